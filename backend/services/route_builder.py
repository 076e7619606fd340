"""
Construction de la route simulée : origine → hubs et villes de passage → destination.

Formule des délais :
  jours_base = ceil(distance_directe / KM_PER_DAY)
  jours      = clamp(jours_base, min_days, max_days)
Les escales sont limitées par le nombre de créneaux d'événements disponibles
(2 par jour ouvré, moins collecte, sortie pour livraison et livraison).
"""
import logging
import math

from models.common import Location, StopType
from models.simulation import Route, RouteWaypoint
from services.geo import distance_km
from services.hub_resolver import hub_budget, nearest_hubs_between, order_along, transit_cities_between

logger = logging.getLogger(__name__)

KM_PER_DAY       = 200.0
ZERO_DISTANCE_KM = 0.5      # origine et destination confondues
EVENTS_PER_DAY   = 2
FIXED_EVENTS     = 3        # collected, out_for_delivery, delivered


def _describe(location: Location, stop_type: StopType) -> str:
    if stop_type in (StopType.ORIGIN, StopType.HUB):
        return f"Centro de Distribuição {location.city}"
    if stop_type == StopType.TRANSIT:
        return f"Em trânsito - {location.city}"
    return location.label


def _waypoint(location: Location, order: int, stop_type: StopType, distance: float, progress: float) -> RouteWaypoint:
    return RouteWaypoint(
        location=location,
        order=order,
        stop_type=stop_type,
        distance_from_origin=round(distance, 3),
        cumulative_progress=progress,
        description=_describe(location, stop_type),
    )


def clamp_days(min_days: int, max_days: int, warnings: list[str]) -> tuple[int, int]:
    """Corrige une plage de jours incohérente au lieu d'échouer."""
    if min_days > max_days:
        msg = f"min_delivery_days ({min_days}) > max_delivery_days ({max_days}) : plage ramenée à {min_days}"
        logger.warning(msg)
        warnings.append(msg)
        max_days = min_days
    return min_days, max_days


def build_route(origin: Location, destination: Location, min_days: int, max_days: int) -> Route:
    warnings: list[str] = []
    min_days, max_days = clamp_days(min_days, max_days, warnings)

    direct = distance_km(origin, destination)

    if direct < ZERO_DISTANCE_KM:
        start = _waypoint(origin, 0, StopType.ORIGIN, 0.0, 0.0)
        end = _waypoint(destination, 1, StopType.DESTINATION, 0.0, 100.0)
        return Route(
            origin=start,
            destination=end,
            waypoints=[start, end],
            total_distance=round(direct, 3),
            walk_distance=0.0,
            total_days=min_days,
            warnings=warnings,
        )

    base_days = math.ceil(direct / KM_PER_DAY)
    total_days = min(max(base_days, min_days), max_days)

    slots = max(0, EVENTS_PER_DAY * total_days - FIXED_EVENTS)
    budget = min(hub_budget(direct), slots)
    hubs = nearest_hubs_between(origin, destination, budget)
    # Créneaux restants : villes de passage entre les hubs
    transits = transit_cities_between(origin, destination, budget - len(hubs), taken=hubs)
    stops = order_along(origin, destination, hubs + transits)

    chain = [origin, *stops, destination]
    cumulative = [0.0]
    for prev, nxt in zip(chain, chain[1:]):
        cumulative.append(cumulative[-1] + distance_km(prev, nxt))
    walk = cumulative[-1]

    waypoints: list[RouteWaypoint] = []
    for order, (location, dist) in enumerate(zip(chain, cumulative)):
        if order == 0:
            stop_type, progress = StopType.ORIGIN, 0.0
        elif order == len(chain) - 1:
            stop_type, progress = StopType.DESTINATION, 100.0
        else:
            stop_type = StopType.HUB if location.is_hub else StopType.TRANSIT
            progress = min(round(dist / walk * 100, 2), 100.0)
        waypoints.append(_waypoint(location, order, stop_type, dist, progress))

    logger.debug(
        "Route %s → %s : %.0f km, %d escale(s) dont %d hub(s), %d jour(s)",
        origin.label, destination.label, direct, len(stops), len(hubs), total_days,
    )

    return Route(
        origin=waypoints[0],
        destination=waypoints[-1],
        waypoints=waypoints,
        total_distance=round(direct, 3),
        walk_distance=round(walk, 3),
        total_days=total_days,
        warnings=warnings,
    )
