import random
import string
import uuid


# ── Identifiants ──────────────────────────────────────────────────────────────
def generate_tracking_code() -> str:
    """Génère un code au format postal : CF123456789BR"""
    digits = "".join(random.choices(string.digits, k=9))
    return f"CF{digits}BR"


def new_id(prefix: str) -> str:
    """Identifiant interne court : dlv_3f9a1c2b7e4d"""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"
