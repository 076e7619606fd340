"""
Génération du calendrier d'événements d'une livraison simulée.

Règles :
  - 2 créneaux par jour ouvré : matin = 1re moitié de la fenêtre
    [update_start_hour, update_end_hour), après-midi = 2de moitié ;
  - créneau 0 → collected, créneau 1 → in_transit, avant-dernier →
    out_for_delivery, dernier → delivered ; les autres sont de simples
    location_update (arrivée en hub ou trajet entre deux escales) ;
  - chaque escale (hub ou ville de passage) occupe exactement un créneau,
    placé selon sa progression ; une ville de passage dans un nouvel État
    annonce le changement d'État, le créneau qui suit un hub annonce le départ ;
  - tout l'aléa (minute exacte, libellés) dérive du code de suivi :
    même livraison + même route + même départ = calendrier identique.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from core.utils import stable_hash
from models.common import DeliveryStatus, EventType, StopType
from models.simulation import Route, RouteWaypoint, ScheduledUpdate
from services.geo import add_business_days, skip_weekends
from services.status_machine import is_terminal

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = (8, 18)
EVENTS_PER_DAY = 2
OUT_FOR_DELIVERY_PROGRESS = 98.0

TEMPLATES = {
    "collected": [
        "Objeto coletado e em processamento",
        "Pacote coletado no remetente",
        "Coleta realizada com sucesso",
    ],
    "processing": [
        "Processamento concluído em {city}",
        "Objeto liberado após conferência em {city}",
        "Triagem finalizada em {city}, {state}",
        "Objeto preparado para próximo trecho em {city}",
    ],
    "hub_arrival": [
        "Objeto recebido no Centro de Distribuição de {city}",
        "Pacote chegou ao CD {city} para triagem",
        "Objeto em processamento no CD {city}, {state}",
        "Carga recepcionada na unidade de {city}",
        "Objeto conferido e triado no CD {city}",
    ],
    "hub_departure": [
        "Objeto encaminhado do CD {city} para {destination}",
        "Carga despachada do Centro de Distribuição {city}",
        "Veículo partiu do CD {city} com destino a {destination}",
        "Objeto em transferência do CD {city}",
        "Saída registrada do CD {city} - em rota para {destination}",
    ],
    "transit_stop": [
        "Objeto em trânsito por {city}, {state}",
        "Carga passou pela unidade de {city}",
        "Em trânsito - {city}",
    ],
    "state_crossing": [
        "Objeto cruzou divisa para {state}",
        "Carga entrou no estado de {state}",
        "Trânsito interestadual - chegou em {state}",
        "Mercadoria em {city}, {state} - nova jurisdição",
    ],
    "transit": [
        "Objeto em trânsito de {city} para {next}",
        "Em transferência para {next}",
        "Carga em deslocamento entre {city} e {next}",
        "Objeto saiu de {city} em direção a {next}",
        "Mercadoria em transporte - seguindo para {next}",
    ],
    "near_destination": [
        "Objeto na região de {destination}, em rota final",
        "Próximo ao destino - {destination}, {destination_state}",
        "Carga recebida na unidade local de {destination}",
        "Objeto sendo encaminhado para região de entrega em {destination}",
    ],
    "out_for_delivery": [
        "Objeto saiu para entrega ao destinatário",
        "Com motorista, saiu para entrega em {destination}",
        "Em rota de entrega - {destination}",
    ],
    "delivered": [
        "Objeto entregue ao destinatário",
        "Entrega realizada com sucesso",
    ],
}


# ── Aléa déterministe ─────────────────────────────────────────────────────────

def _draw(seed: str, key: str, n: int) -> int:
    """Entier dans [0, n) dérivé de (code de suivi, clé de tirage)."""
    return stable_hash(seed, key) % n if n > 0 else 0


def _text(seed: str, key: str, category: str, **values) -> str:
    options = TEMPLATES[category]
    return options[_draw(seed, key, len(options))].format(**values)


# ── Fenêtre horaire ──────────────────────────────────────────────────────────

def business_window(start_hour: int, end_hour: int) -> tuple[int, int, list[str]]:
    """Valide la fenêtre [start, end) ; une fenêtre invalide retombe sur 08h-18h."""
    if 0 <= start_hour < end_hour <= 23:
        return start_hour, end_hour, []
    msg = (
        f"Fenêtre horaire invalide ({start_hour}h-{end_hour}h) : "
        f"utilisation de {DEFAULT_WINDOW[0]}h-{DEFAULT_WINDOW[1]}h"
    )
    logger.warning(msg)
    return DEFAULT_WINDOW[0], DEFAULT_WINDOW[1], [msg]


def first_business_day(start: datetime, start_hour: int) -> date:
    """Premier jour d'événements : le jour même si avant l'ouverture, sinon le lendemain."""
    day = start.date() if start.hour < start_hour else start.date() + timedelta(days=1)
    return skip_weekends(day)


def estimated_delivery_date(route: Route, start: datetime, start_hour: int) -> date:
    return add_business_days(first_business_day(start, start_hour), max(route.total_days, 1) - 1)


class _Clock:
    """Horodatage des créneaux : jour ouvré = slot // 2, demi-fenêtre = slot % 2."""

    def __init__(self, seed: str, first_day: date, start_hour: int, end_hour: int, tzinfo):
        self.seed = seed
        self.first_day = first_day
        self.start_hour = start_hour
        self.window = (end_hour - start_hour) * 60
        self.tzinfo = tzinfo

    def at(self, slot: int) -> datetime:
        day = add_business_days(self.first_day, slot // EVENTS_PER_DAY)
        half_len = self.window // EVENTS_PER_DAY
        lo = (slot % EVENTS_PER_DAY) * half_len
        hi = half_len if slot % EVENTS_PER_DAY == 0 else self.window
        minute = lo + _draw(self.seed, f"minute-{slot}", hi - lo)
        opening = datetime.combine(day, time(self.start_hour), tzinfo=self.tzinfo)
        return opening + timedelta(minutes=minute)


def status_for_position(slot: int, total_slots: int) -> Optional[DeliveryStatus]:
    """Statut porté par un créneau, selon sa seule position relative dans le calendrier."""
    if slot == 0:
        return DeliveryStatus.COLLECTED
    if slot == total_slots - 1:
        return DeliveryStatus.DELIVERED
    if slot == total_slots - 2:
        return DeliveryStatus.OUT_FOR_DELIVERY
    if slot == 1:
        return DeliveryStatus.IN_TRANSIT
    return None


def _stop_slots(stops: list[RouteWaypoint], middle: int) -> dict[int, RouteWaypoint]:
    """Place chaque escale sur un créneau intermédiaire (1..middle), strictement croissant."""
    placed: dict[int, RouteWaypoint] = {}
    prev = 0
    for i, stop in enumerate(stops):
        raw = 1 + int(stop.cumulative_progress / 100 * middle)
        slot = min(max(raw, prev + 1), middle - (len(stops) - 1 - i))
        placed[slot] = stop
        prev = slot
    return placed


def _update(seq: int, when: datetime, status: Optional[DeliveryStatus], waypoint: RouteWaypoint,
            description: str, progress: float) -> ScheduledUpdate:
    return ScheduledUpdate(
        sequence=seq,
        scheduled_for=when,
        event_type=EventType.STATUS_CHANGE if status else EventType.LOCATION_UPDATE,
        new_status=status,
        waypoint=waypoint,
        description=description,
        progress_percent=round(progress, 1),
    )


def generate_schedule(
    route: Route,
    tracking_code: str,
    update_start_hour: int,
    update_end_hour: int,
    start: datetime,
    current_status: DeliveryStatus = DeliveryStatus.PENDING,
) -> list[ScheduledUpdate]:
    """
    Calendrier complet d'une livraison, trié par scheduled_for.
    `start` est l'instant de référence (création de la livraison) : tous les
    événements lui sont postérieurs. Aucune mise à jour pour un statut terminal.
    """
    if is_terminal(current_status):
        return []

    start_hour, end_hour, _ = business_window(update_start_hour, update_end_hour)
    seed = tracking_code or ""
    clock = _Clock(seed, first_business_day(start, start_hour), start_hour, end_hour, start.tzinfo)
    origin, destination = route.origin, route.destination
    names = {"destination": destination.location.city, "destination_state": destination.location.state}

    if route.total_days <= 0 or len(route.waypoints) < 2:
        return [_update(0, clock.at(0), DeliveryStatus.DELIVERED, destination,
                        _text(seed, "delivered", "delivered", **names), 100.0)]

    total_slots = EVENTS_PER_DAY * route.total_days

    # Route triviale (origine = destination) ou livraison en un jour : collecte puis livraison
    if route.walk_distance <= 0 or total_slots < 4:
        return [
            _update(0, clock.at(0), DeliveryStatus.COLLECTED, origin,
                    _text(seed, "collected", "collected"), 0.0),
            _update(1, clock.at(total_slots - 1), DeliveryStatus.DELIVERED, destination,
                    _text(seed, "delivered", "delivered", **names), 100.0),
        ]

    middle = total_slots - 3
    stops = route.stops[:middle]
    if len(stops) < len(route.stops):
        logger.warning("Trop d'escales (%d) pour %d créneaux : route tronquée", len(route.stops), middle)
    at_slot = _stop_slots(stops, middle)

    # Points d'ancrage (créneau, progression, waypoint) pour interpoler les créneaux de trajet
    anchors = [(0, 0.0, origin)]
    anchors += [(slot, wp.cumulative_progress, wp) for slot, wp in sorted(at_slot.items())]
    anchors.append((total_slots - 2, max(OUT_FOR_DELIVERY_PROGRESS, anchors[-1][1]), destination))

    updates: list[ScheduledUpdate] = [
        _update(0, clock.at(0), DeliveryStatus.COLLECTED, origin, _text(seed, "collected", "collected"), 0.0),
    ]
    for slot in range(1, total_slots - 2):
        status = status_for_position(slot, total_slots)
        prev_slot, prev_progress, prev_wp = max((a for a in anchors if a[0] < slot), key=lambda a: a[0])

        if slot in at_slot:
            stop = at_slot[slot]
            where = dict(names, city=stop.location.city, state=stop.location.state)
            if stop.stop_type == StopType.HUB:
                category = "hub_arrival"
            elif stop.location.state != prev_wp.location.state:
                category = "state_crossing"
            else:
                category = "transit_stop"
            updates.append(_update(slot, clock.at(slot), status, stop,
                                   _text(seed, f"text-{slot}", category, **where), stop.cumulative_progress))
            continue

        next_slot, next_progress, next_wp = min((a for a in anchors if a[0] > slot), key=lambda a: a[0])
        progress = prev_progress + (next_progress - prev_progress) * (slot - prev_slot) / (next_slot - prev_slot)

        values = dict(
            names,
            city=prev_wp.location.city,
            state=prev_wp.location.state,
            next=next_wp.location.city,
        )
        if prev_wp.stop_type == StopType.HUB and slot == prev_slot + 1:
            category = "hub_departure"
        elif progress > 80:
            category = "near_destination"
        elif prev_wp is origin and progress < 15:
            category = "processing"
        else:
            category = "transit"
        updates.append(_update(slot, clock.at(slot), status, prev_wp, _text(seed, f"text-{slot}", category, **values), progress))

    ofd_slot, last_slot = total_slots - 2, total_slots - 1
    updates.append(_update(ofd_slot, clock.at(ofd_slot), DeliveryStatus.OUT_FOR_DELIVERY, destination,
                           _text(seed, "out_for_delivery", "out_for_delivery", **names), anchors[-1][1]))
    updates.append(_update(last_slot, clock.at(last_slot), DeliveryStatus.DELIVERED, destination,
                           _text(seed, "delivered", "delivered", **names), 100.0))
    return updates
