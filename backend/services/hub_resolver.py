"""
Résolution des villes et sélection des hubs intermédiaires.

Table fixe des principales villes brésiliennes ; les hubs (is_hub) sont les
centres de distribution régionaux utilisés comme escales, les autres villes du
couloir servent de villes de passage. Une ville inconnue n'est jamais une
erreur : on synthétise des coordonnées plausibles.
"""
import logging
import math
from typing import Optional

from core.utils import normalize_text, stable_hash
from models.common import Location
from services.geo import EARTH_RADIUS_KM, distance_km

logger = logging.getLogger(__name__)

# (ville, UF, lat, lng, hub)
_CITY_ROWS: list[tuple[str, str, float, float, bool]] = [
    # Sudeste
    ("São Paulo",            "SP", -23.5505, -46.6333, True),
    ("Rio de Janeiro",       "RJ", -22.9068, -43.1729, True),
    ("Belo Horizonte",       "MG", -19.9167, -43.9345, True),
    ("Campinas",             "SP", -22.9064, -47.0616, True),
    ("Uberlândia",           "MG", -18.9186, -48.2772, True),
    ("Vitória",              "ES", -20.3155, -40.3128, True),
    ("Guarulhos",            "SP", -23.4538, -46.5333, False),
    ("Ribeirão Preto",       "SP", -21.1767, -47.8208, False),
    ("Santos",               "SP", -23.9608, -46.3336, False),
    ("São José dos Campos",  "SP", -23.1791, -45.8872, False),
    ("Sorocaba",             "SP", -23.5015, -47.4526, False),
    ("Taubaté",              "SP", -23.0224, -45.5558, False),
    ("Limeira",              "SP", -22.5642, -47.4017, False),
    ("São Carlos",           "SP", -22.0174, -47.8908, False),
    ("Franca",               "SP", -20.5387, -47.4008, False),
    ("Registro",             "SP", -24.4872, -47.8442, False),
    ("Niterói",              "RJ", -22.8833, -43.1036, False),
    ("Volta Redonda",        "RJ", -22.5232, -44.1042, False),
    ("Campos dos Goytacazes", "RJ", -21.7545, -41.3244, False),
    ("Juiz de Fora",         "MG", -21.7642, -43.3496, False),
    ("Pouso Alegre",         "MG", -22.2300, -45.9364, False),
    ("Uberaba",              "MG", -19.7472, -47.9319, False),
    ("Montes Claros",        "MG", -16.7350, -43.8617, False),
    ("Vila Velha",           "ES", -20.3297, -40.2925, False),
    # Sul
    ("Curitiba",             "PR", -25.4290, -49.2671, True),
    ("Porto Alegre",         "RS", -30.0346, -51.2177, True),
    ("Florianópolis",        "SC", -27.5954, -48.5480, True),
    ("Londrina",             "PR", -23.3045, -51.1696, True),
    ("Maringá",              "PR", -23.4205, -51.9333, False),
    ("Ponta Grossa",         "PR", -25.0945, -50.1633, False),
    ("Cascavel",             "PR", -24.9556, -53.4553, False),
    ("Joinville",            "SC", -26.3045, -48.8487, False),
    ("Blumenau",             "SC", -26.9194, -49.0661, False),
    ("Criciúma",             "SC", -28.6775, -49.3697, False),
    ("Caxias do Sul",        "RS", -29.1634, -51.1797, False),
    ("Pelotas",              "RS", -31.7654, -52.3424, False),
    # Nordeste
    ("Salvador",             "BA", -12.9714, -38.5014, True),
    ("Recife",               "PE",  -8.0476, -34.8770, True),
    ("Fortaleza",            "CE",  -3.7172, -38.5433, True),
    ("Teresina",             "PI",  -5.0920, -42.8038, True),
    ("São Luís",             "MA",  -2.5387, -44.2826, True),
    ("Feira de Santana",     "BA", -12.2667, -38.9667, False),
    ("Vitória da Conquista", "BA", -14.8661, -40.8394, False),
    ("Natal",                "RN",  -5.7945, -35.2110, False),
    ("João Pessoa",          "PB",  -7.1195, -34.8450, False),
    ("Maceió",               "AL",  -9.6658, -35.7350, False),
    ("Aracaju",              "SE", -10.9472, -37.0731, False),
    # Centro-Oeste
    ("Brasília",             "DF", -15.7942, -47.8822, True),
    ("Goiânia",              "GO", -16.6869, -49.2648, True),
    ("Cuiabá",               "MT", -15.6014, -56.0979, True),
    ("Campo Grande",         "MS", -20.4697, -54.6201, True),
    ("Anápolis",             "GO", -16.3281, -48.9534, False),
    ("Itumbiara",            "GO", -18.4192, -49.2156, False),
    # Norte
    ("Manaus",               "AM",  -3.1190, -60.0217, True),
    ("Belém",                "PA",  -1.4558, -48.4902, True),
    ("Porto Velho",          "RO",  -8.7612, -63.9004, True),
    ("Palmas",               "TO", -10.2491, -48.3243, True),
    ("Boa Vista",            "RR",   2.8235, -60.6758, False),
    ("Macapá",               "AP",   0.0356, -51.0705, False),
    ("Rio Branco",           "AC",  -9.9754, -67.8249, False),
]

CITIES: list[Location] = [
    Location(city=name, state=uf, lat=lat, lng=lng, is_hub=hub)
    for name, uf, lat, lng, hub in _CITY_ROWS
]
HUBS: list[Location] = [c for c in CITIES if c.is_hub]

_BY_KEY: dict[tuple[str, str], Location] = {
    (normalize_text(c.city), c.state): c for c in CITIES
}

NATIONAL_FALLBACK = _BY_KEY[("sao paulo", "SP")]

# Paramètres de sélection des hubs
DIRECT_ROUTE_KM       = 150.0    # en dessous : route directe, aucun hub
KM_PER_HUB            = 500.0    # un hub supplémentaire par tranche de 500 km
MAX_HUBS              = 6
ENDPOINT_CLEARANCE_KM = 50.0     # un hub doit être distinct des extrémités
CORRIDOR_RATIO        = 0.10     # écart latéral max : 10 % de la distance directe…
MAX_CORRIDOR_KM       = 300.0    # …plafonné à 300 km
MIN_HUB_SPACING_KM    = 150.0    # deux escales trop proches → une seule
MIN_TRANSIT_SPACING_KM = 100.0   # ville de passage : écart min avec les autres escales

_KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180


def find_city(name: str, state: str) -> Optional[Location]:
    return _BY_KEY.get((normalize_text(name), (state or "").strip().upper()))


def resolve_city(
    name: str,
    state: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
) -> Location:
    """
    Résout une ville en Location. Les coordonnées explicites priment sur la
    table. Ville inconnue sans coordonnées → position synthétique proche du hub
    de l'État (ou du repli national), décalée de façon déterministe.
    """
    uf = (state or "").strip().upper()
    has_coords = lat is not None and lng is not None
    known = find_city(name, uf)

    if known:
        return known.model_copy(update={"lat": lat, "lng": lng}) if has_coords else known

    city_name = (name or "").strip() or "Desconhecida"
    if has_coords:
        return Location(city=city_name, state=uf if len(uf) == 2 else NATIONAL_FALLBACK.state, lat=lat, lng=lng)

    anchor = _state_anchor(uf)
    spread = 1.0
    if anchor is None:
        anchor, spread = NATIONAL_FALLBACK, 5.0
    if len(uf) != 2:
        uf = anchor.state

    h = stable_hash("city", normalize_text(city_name), uf)
    dlat = ((h & 0xFFFF) / 0xFFFF - 0.5) * spread
    dlng = (((h >> 16) & 0xFFFF) / 0xFFFF - 0.5) * spread
    logger.info(
        "Cidade desconhecida %s/%s : coordenadas aproximadas a partir de %s",
        city_name, uf, anchor.label,
    )
    return Location(city=city_name, state=uf, lat=round(anchor.lat + dlat, 4), lng=round(anchor.lng + dlng, 4))


def _state_anchor(uf: str) -> Optional[Location]:
    in_state = [c for c in CITIES if c.state == uf]
    if not in_state:
        return None
    hubs = [c for c in in_state if c.is_hub]
    return (hubs or in_state)[0]


def hub_budget(direct_km: float) -> int:
    """Nombre max d'escales pour une distance : croissant, 0 pour les courtes distances."""
    if direct_km < DIRECT_ROUTE_KM:
        return 0
    return min(MAX_HUBS, 1 + int(direct_km // KM_PER_HUB))


def _project(origin: Location, destination: Location, point: Location) -> tuple[float, float]:
    """
    Projection équirectangulaire du point sur le segment origine→destination.
    Retourne (t, écart latéral en km), t ∈ [0, 1] le long du segment.
    """
    cos_lat = math.cos(math.radians((origin.lat + destination.lat) / 2))
    dx = (destination.lng - origin.lng) * cos_lat * _KM_PER_DEGREE
    dy = (destination.lat - origin.lat) * _KM_PER_DEGREE
    px = (point.lng - origin.lng) * cos_lat * _KM_PER_DEGREE
    py = (point.lat - origin.lat) * _KM_PER_DEGREE
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return 0.0, math.hypot(px, py)
    t = (px * dx + py * dy) / length_sq
    return t, math.hypot(px - t * dx, py - t * dy)


def _corridor_candidates(origin: Location, destination: Location, pool: list[Location]) -> list[tuple]:
    """Villes du pool situées dans le couloir, triées par détour croissant."""
    direct = distance_km(origin, destination)
    corridor = min(CORRIDOR_RATIO * direct, MAX_CORRIDOR_KM)
    candidates = []
    for city in pool:
        from_origin = distance_km(origin, city)
        to_destination = distance_km(city, destination)
        if min(from_origin, to_destination) < ENDPOINT_CLEARANCE_KM:
            continue
        t, offset = _project(origin, destination, city)
        if not 0.0 < t < 1.0 or offset > corridor:
            continue
        detour = from_origin + to_destination - direct
        candidates.append((round(detour, 6), t, city.city, city))
    candidates.sort(key=lambda c: c[:3])
    return candidates


def _pick_spaced(candidates: list[tuple], max_hops: int, spacing: float, taken: list[Location]) -> list[Location]:
    chosen: list[Location] = []
    for _, _, _, city in candidates:
        if len(chosen) >= max_hops:
            break
        if any(distance_km(city, other) < spacing for other in [*taken, *chosen]):
            continue
        chosen.append(city)
    return chosen


def order_along(origin: Location, destination: Location, stops: list[Location]) -> list[Location]:
    """Escales triées dans le sens du trajet."""
    return sorted(stops, key=lambda s: _project(origin, destination, s)[0])


def nearest_hubs_between(origin: Location, destination: Location, max_hops: int) -> list[Location]:
    """
    Jusqu'à `max_hops` hubs situés dans le couloir origine→destination,
    choisis par détour croissant, renvoyés dans l'ordre du trajet.
    """
    if max_hops <= 0 or distance_km(origin, destination) < DIRECT_ROUTE_KM:
        return []
    candidates = _corridor_candidates(origin, destination, HUBS)
    return order_along(origin, destination, _pick_spaced(candidates, max_hops, MIN_HUB_SPACING_KM, []))


def transit_cities_between(
    origin: Location,
    destination: Location,
    max_stops: int,
    taken: Optional[list[Location]] = None,
) -> list[Location]:
    """
    Villes de passage (non hubs) du couloir, à au moins MIN_TRANSIT_SPACING_KM
    des escales déjà retenues (`taken`). Ordre du trajet.
    """
    if max_stops <= 0 or distance_km(origin, destination) < DIRECT_ROUTE_KM:
        return []
    pool = [c for c in CITIES if not c.is_hub]
    chosen = _pick_spaced(_corridor_candidates(origin, destination, pool), max_stops, MIN_TRANSIT_SPACING_KM, taken or [])
    return order_along(origin, destination, chosen)
