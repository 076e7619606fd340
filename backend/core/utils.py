import hashlib
import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional


def normalize_text(text: str) -> str:
    """
    Normalise un nom de ville pour les comparaisons :
    minuscules, sans accents, espaces compactés.
    "  São  Paulo " -> "sao paulo"
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", stripped).strip().lower()


def stable_hash(*parts) -> int:
    """
    Hash entier stable entre processus (contrairement à hash()).
    Sert de graine à toutes les tirages pseudo-aléatoires de la simulation.
    """
    key = "|".join(str(p) for p in parts)
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def to_storage(dt: Optional[datetime]) -> Optional[datetime]:
    """Datetime → UTC naïf, tel que MongoDB le stocke et le renvoie."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def from_storage(dt: Optional[datetime]) -> Optional[datetime]:
    """Inverse de to_storage : UTC naïf → UTC aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
