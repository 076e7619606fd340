"""
Service de simulation : création des livraisons, programmation, rejeu et
application des événements.

Collections :
  deliveries         → état courant de chaque livraison
  scheduled_events   → calendrier (executed=False tant que non appliqué)
  delivery_history   → historique visible par le client (jamais réécrit)
  simulation_config  → configuration active (config_id="active")
"""
import asyncio
import logging
import weakref
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import settings
from database import db
from core.exceptions import bad_request_exception, not_found_exception
from core.security import generate_tracking_code, new_id
from core.utils import from_storage, to_storage, utcnow
from models.common import DeliveryStatus, HistorySource
from models.delivery import DeliveryCreate, StatusUpdateRequest
from models.simulation import (
    AdvanceOutcome,
    AdvanceResult,
    ProcessReport,
    RegenerationReport,
    Route,
    SchedulePlan,
    ScheduledUpdate,
    SimulationConfig,
    SimulationConfigUpdate,
)
from services.hub_resolver import resolve_city
from services.route_builder import build_route, clamp_days
from services.schedule_generator import business_window, estimated_delivery_date, generate_schedule
from services.status_machine import STATUS_PROGRESS, advance, is_terminal, label, status_rank

logger = logging.getLogger(__name__)

ACTIVE_CONFIG_ID = "active"
DELIVERY_NOT_FOUND = "Entrega não encontrada"
TERMINAL_VALUES = [s.value for s in DeliveryStatus if is_terminal(s)]

# Verrous par livraison : regenerate, advance, forçage et job ne se chevauchent pas.
# Un verrou disparaît dès que plus personne ne le détient ni ne l'attend.
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock(delivery_id: str) -> asyncio.Lock:
    lock = _locks.get(delivery_id)
    if lock is None:
        lock = _locks[delivery_id] = asyncio.Lock()
    return lock


def _local_tz() -> ZoneInfo:
    return ZoneInfo(settings.SIMULATION_TIMEZONE)


# ── Configuration ─────────────────────────────────────────────────────────────

async def get_simulation_config() -> SimulationConfig:
    """Config active en base, sinon valeurs par défaut de Settings. Jamais mise en cache."""
    doc = await db.simulation_config.find_one({"config_id": ACTIVE_CONFIG_ID}, {"_id": 0, "config_id": 0})
    if not doc:
        return SimulationConfig.from_settings()
    return SimulationConfig(**doc)


def config_warnings(config: SimulationConfig) -> list[str]:
    warnings: list[str] = []
    clamp_days(config.min_delivery_days, config.max_delivery_days, warnings)
    warnings += business_window(config.update_start_hour, config.update_end_hour)[2]
    return warnings


async def save_simulation_config(update: SimulationConfigUpdate) -> tuple[SimulationConfig, list[str]]:
    """Fusionne la mise à jour dans la config active. Incohérences → avertissements, pas d'erreur."""
    current = await get_simulation_config()
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    if "origin_state" in changes:
        changes["origin_state"] = changes["origin_state"].upper()
    config = current.model_copy(update={**changes, "updated_at": utcnow()})

    await db.simulation_config.update_one(
        {"config_id": ACTIVE_CONFIG_ID},
        {"$set": {**config.model_dump(), "updated_at": to_storage(config.updated_at)}},
        upsert=True,
    )
    logger.info("Configuration de simulation mise à jour : %s", sorted(changes))
    return config, config_warnings(config)


# ── Moteur (pur) ──────────────────────────────────────────────────────────────

def _route_for(config: SimulationConfig, city: str, state: str,
               lat: Optional[float] = None, lng: Optional[float] = None) -> Route:
    origin = resolve_city(config.origin_city, config.origin_state, config.origin_lat, config.origin_lng)
    destination = resolve_city(city, state, lat, lng)
    return build_route(origin, destination, config.min_delivery_days, config.max_delivery_days)


def schedule_new_delivery(delivery: dict, config: SimulationConfig) -> SchedulePlan:
    """
    Route + calendrier d'une livraison, à partir de la config passée en paramètre.
    Ne touche pas à la base : le résultat est persisté par l'appelant.
    """
    if not delivery.get("auto_simulate", True):
        return SchedulePlan()

    route = _route_for(
        config,
        delivery["destination_city"],
        delivery["destination_state"],
        delivery.get("destination_lat"),
        delivery.get("destination_lng"),
    )
    start_hour, end_hour, window_warnings = business_window(config.update_start_hour, config.update_end_hour)
    start = from_storage(delivery["created_at"]).astimezone(_local_tz())
    updates = generate_schedule(
        route,
        delivery["tracking_code"],
        start_hour,
        end_hour,
        start,
        DeliveryStatus(delivery.get("status", DeliveryStatus.PENDING)),
    )
    return SchedulePlan(route=route, updates=updates, warnings=route.warnings + window_warnings)


def estimate_delivery_date(config: SimulationConfig, city: str, state: str,
                           lat: Optional[float] = None, lng: Optional[float] = None,
                           start: Optional[datetime] = None) -> date:
    route = _route_for(config, city, state, lat, lng)
    start_hour = business_window(config.update_start_hour, config.update_end_hour)[0]
    return estimated_delivery_date(route, (start or utcnow()).astimezone(_local_tz()), start_hour)


def preview_route(config: SimulationConfig, city: str, state: str,
                  lat: Optional[float] = None, lng: Optional[float] = None) -> dict:
    route = _route_for(config, city, state, lat, lng)
    return {
        "route": route.model_dump(),
        "estimated_delivery": estimate_delivery_date(config, city, state, lat, lng).isoformat(),
        "warnings": route.warnings,
    }


# ── Persistance ───────────────────────────────────────────────────────────────

def _event_doc(delivery_id: str, update: ScheduledUpdate) -> dict:
    loc = update.waypoint.location
    return {
        "event_id":          new_id("evt"),
        "delivery_id":       delivery_id,
        "sequence":          update.sequence,
        "scheduled_for":     to_storage(update.scheduled_for),
        "event_type":        update.event_type.value,
        "new_status":        update.new_status.value if update.new_status else None,
        "location":          loc.label,
        "city":              loc.city,
        "state":             loc.state,
        "lat":               loc.lat,
        "lng":               loc.lng,
        "description":       update.description,
        "progress_percent":  update.progress_percent,
        "distance_traveled": update.waypoint.distance_from_origin,
        "executed":          False,
        "executed_at":       None,
    }


def _public(doc: dict) -> dict:
    """Copie sans _id, dates rendues en UTC aware."""
    out = {k: v for k, v in doc.items() if k != "_id"}
    for key in ("scheduled_for", "executed_at", "created_at", "updated_at", "delivered_at"):
        if isinstance(out.get(key), datetime):
            out[key] = from_storage(out[key])
    return out


async def _record_history(
    delivery_id: str,
    status: DeliveryStatus,
    location: str,
    description: str,
    source: HistorySource,
    city: Optional[str] = None,
    state: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    progress_percent: Optional[float] = None,
    event_id: Optional[str] = None,
):
    """Ajoute une entrée à delivery_history."""
    entry = {
        "history_id":       new_id("hst"),
        "delivery_id":      delivery_id,
        "status":           DeliveryStatus(status).value,
        "location":         location,
        "city":             city,
        "state":            state,
        "lat":              lat,
        "lng":              lng,
        "description":      description,
        "progress_percent": progress_percent,
        "source":           source.value,
        "event_id":         event_id,
        "created_at":       to_storage(utcnow()),
    }
    await db.delivery_history.insert_one(entry)


async def _insert_events(delivery_id: str, updates: list[ScheduledUpdate]) -> int:
    if not updates:
        return 0
    await db.scheduled_events.insert_many([_event_doc(delivery_id, u) for u in updates])
    return len(updates)


async def _discard_pending(delivery_id: str) -> int:
    result = await db.scheduled_events.delete_many({"delivery_id": delivery_id, "executed": False})
    if result.deleted_count:
        logger.info("%d événement(s) en attente supprimé(s) pour %s", result.deleted_count, delivery_id)
    return result.deleted_count


async def _unique_tracking_code() -> str:
    while True:
        code = generate_tracking_code()
        if not await db.deliveries.find_one({"tracking_code": code}, {"_id": 1}):
            return code


# ── Opérations ────────────────────────────────────────────────────────────────

async def create_delivery(data: DeliveryCreate) -> dict:
    """Crée une livraison pending, son historique initial et, si activé, son calendrier."""
    config = await get_simulation_config()
    now = utcnow()
    delivery_id = new_id("dlv")

    doc = {
        **data.model_dump(),
        "delivery_id":      delivery_id,
        "tracking_code":    await _unique_tracking_code(),
        "status":           DeliveryStatus.PENDING.value,
        "origin_city":      data.origin_city or config.origin_city,
        "origin_state":     data.origin_state or config.origin_state,
        "current_location": f"{config.origin_city}, {config.origin_state}",
        "current_city":     config.origin_city,
        "current_state":    config.origin_state,
        "current_lat":      config.origin_lat,
        "current_lng":      config.origin_lng,
        "progress_percent": 0.0,
        "delivered_at":     None,
        "created_at":       to_storage(now),
        "updated_at":       to_storage(now),
    }

    plan = schedule_new_delivery(doc, config)
    if plan.updates:
        estimated = plan.updates[-1].scheduled_for.date()
    else:
        estimated = estimate_delivery_date(
            config, data.destination_city, data.destination_state,
            data.destination_lat, data.destination_lng, start=now,
        )
    doc["estimated_delivery"] = estimated.isoformat()

    await db.deliveries.insert_one(doc)
    await _record_history(
        delivery_id,
        DeliveryStatus.PENDING,
        doc["current_location"],
        "Pedido recebido no sistema. Aguardando coleta.",
        HistorySource.CREATION,
        city=config.origin_city,
        state=config.origin_state,
        lat=config.origin_lat,
        lng=config.origin_lng,
        progress_percent=0.0,
    )
    created = await _insert_events(delivery_id, plan.updates)
    logger.info("Livraison %s créée (%s) : %d événement(s) programmé(s)", delivery_id, doc["tracking_code"], created)

    return {**_public(doc), "scheduled_events": created, "warnings": plan.warnings}


def splice_remaining(
    updates: list[ScheduledUpdate],
    status: DeliveryStatus,
    progress: float,
    last_sequence: int,
) -> list[ScheduledUpdate]:
    """
    Partie d'un nouveau calendrier qui prolonge l'état courant d'une livraison.

    Le raccord se fait sur la progression, pas sur le numéro de créneau : un
    calendrier recalculé avec une autre durée n'a plus les mêmes créneaux. On
    repart du premier événement qui fait avancer la progression (ou qui
    l'égale avec un numéro postérieur au dernier appliqué), en écartant les
    statuts qui ne font pas avancer la chaîne. Les événements retenus sont
    renumérotés à partir de last_sequence + 1.
    """
    rank = status_rank(status)

    def moves_forward(u: ScheduledUpdate) -> bool:
        return u.new_status is None or status_rank(u.new_status) > rank

    start = next(
        (i for i, u in enumerate(updates)
         if moves_forward(u) and (u.progress_percent > progress
                                  or (u.progress_percent == progress and u.sequence > last_sequence))),
        len(updates),
    )
    tail = [u for u in updates[start:] if moves_forward(u)]

    # Une livraison non terminale garde toujours de quoi arriver à delivered
    if updates and not any(u.new_status == DeliveryStatus.DELIVERED for u in tail):
        tail = [u for u in updates
                if u.new_status in (DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED) and moves_forward(u)]

    return [u.model_copy(update={"sequence": last_sequence + 1 + i}) for i, u in enumerate(tail)]


async def _regenerate_one(delivery: dict, config: SimulationConfig) -> int:
    delivery_id = delivery["delivery_id"]
    plan = schedule_new_delivery(delivery, config)

    last = await db.scheduled_events.find(
        {"delivery_id": delivery_id, "executed": True}, {"_id": 0, "sequence": 1},
    ).sort("sequence", -1).limit(1).to_list(length=1)
    last_sequence = last[0]["sequence"] if last else -1
    remaining = splice_remaining(
        plan.updates,
        DeliveryStatus(delivery["status"]),
        delivery.get("progress_percent") or 0.0,
        last_sequence,
    )

    await _discard_pending(delivery_id)
    created = await _insert_events(delivery_id, remaining)

    if remaining:
        await db.deliveries.update_one(
            {"delivery_id": delivery_id},
            {"$set": {
                "estimated_delivery": remaining[-1].scheduled_for.date().isoformat(),
                "updated_at": to_storage(utcnow()),
            }},
        )
    return created


async def regenerate_history(
    ids: Optional[list[str]] = None,
    all_active: bool = False,
    abort: Optional[asyncio.Event] = None,
) -> RegenerationReport:
    """
    Recalcule les événements futurs des livraisons ciblées (ids, ou toutes les
    non terminales). L'historique déjà appliqué n'est jamais touché ; un échec
    isolé n'interrompt pas le lot. `abort` arrête le lot entre deux livraisons.
    """
    if not ids and not all_active:
        raise bad_request_exception("Informe os IDs das entregas ou all=true")

    query = {"delivery_id": {"$in": ids}} if ids else {"status": {"$nin": TERMINAL_VALUES}}
    deliveries = await db.deliveries.find(query, {"_id": 0}).to_list(length=None)
    config = await get_simulation_config()

    report = RegenerationReport(requested=len(ids) if ids else len(deliveries))
    if ids:
        found = {d["delivery_id"] for d in deliveries}
        report.errors += [f"{i}: {DELIVERY_NOT_FOUND}" for i in ids if i not in found]

    for delivery in deliveries:
        if abort is not None and abort.is_set():
            report.aborted = True
            logger.warning("Régénération interrompue après %d livraison(s)", report.regenerated)
            break
        delivery_id = delivery["delivery_id"]
        try:
            async with _lock(delivery_id):
                fresh = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0}) or delivery
                if is_terminal(fresh["status"]):
                    report.skipped_terminal.append(delivery_id)
                    continue
                report.events_created += await _regenerate_one(fresh, config)
                report.regenerated += 1
        except Exception as e:
            logger.exception("Échec de la régénération de %s", delivery_id)
            report.errors.append(f"{delivery_id}: {e}")

    logger.info(
        "Régénération : %d/%d livraison(s), %d événement(s) créé(s), %d erreur(s)",
        report.regenerated, report.requested, report.events_created, len(report.errors),
    )
    return report


async def _apply_event(delivery: dict, event: dict) -> DeliveryStatus:
    """Applique un événement programmé : position, statut, historique, exécution."""
    delivery_id = delivery["delivery_id"]
    now = to_storage(utcnow())
    status = DeliveryStatus(event.get("new_status") or delivery["status"])

    changes = {
        "status":           status.value,
        "current_location": event["location"],
        "current_city":     event["city"],
        "current_state":    event["state"],
        "current_lat":      event["lat"],
        "current_lng":      event["lng"],
        "progress_percent": event["progress_percent"],
        "updated_at":       now,
    }
    if status == DeliveryStatus.DELIVERED:
        changes["delivered_at"] = now

    await db.deliveries.update_one({"delivery_id": delivery_id}, {"$set": changes})
    await _record_history(
        delivery_id,
        status,
        event["location"],
        event["description"],
        HistorySource.SIMULATION,
        city=event["city"],
        state=event["state"],
        lat=event["lat"],
        lng=event["lng"],
        progress_percent=event["progress_percent"],
        event_id=event["event_id"],
    )
    await db.scheduled_events.update_one(
        {"event_id": event["event_id"]},
        {"$set": {"executed": True, "executed_at": now}},
    )
    if is_terminal(status):
        await _discard_pending(delivery_id)
    return status


async def _next_pending(delivery_id: str) -> Optional[dict]:
    rows = await db.scheduled_events.find(
        {"delivery_id": delivery_id, "executed": False}, {"_id": 0},
    ).sort("sequence", 1).limit(1).to_list(length=1)
    return rows[0] if rows else None


async def advance_now(delivery_id: str) -> AdvanceResult:
    """Applique immédiatement le prochain événement en attente, quelle que soit son heure."""
    async with _lock(delivery_id):
        delivery = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0})
        if not delivery:
            raise not_found_exception(detail=DELIVERY_NOT_FOUND)

        current = DeliveryStatus(delivery["status"])
        if advance(current).already_terminal:
            logger.info("Avance refusée pour %s : statut terminal %s", delivery_id, current.value)
            return AdvanceResult(
                outcome=AdvanceOutcome.ALREADY_TERMINAL,
                delivery_id=delivery_id,
                status=current,
                message=f"Entrega já está em estado final ({label(current)})",
            )

        event = await _next_pending(delivery_id)
        if not event:
            return AdvanceResult(
                outcome=AdvanceOutcome.NOTHING_PENDING,
                delivery_id=delivery_id,
                status=current,
                message="Nenhuma atualização pendente para esta entrega",
            )

        status = await _apply_event(delivery, event)
        remaining = await db.scheduled_events.count_documents({"delivery_id": delivery_id, "executed": False})

    return AdvanceResult(
        outcome=AdvanceOutcome.APPLIED,
        delivery_id=delivery_id,
        status=status,
        event=_public({**event, "executed": True}),
        remaining_updates=remaining,
        message=f"Atualização aplicada: {event['description']}",
    )


async def set_status(delivery_id: str, request: StatusUpdateRequest) -> dict:
    """
    Forçage manuel du statut, hors chaîne canonique. Un statut terminal
    supprime les événements encore en attente.
    """
    async with _lock(delivery_id):
        delivery = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0})
        if not delivery:
            raise not_found_exception(detail=DELIVERY_NOT_FOUND)

        status = request.status
        location = request.location or delivery.get("current_location") or "Localização não informada"
        city = request.city or location.split(",")[0].strip()
        state = request.state.upper() if request.state else delivery.get("current_state")
        progress = max(delivery.get("progress_percent") or 0.0, STATUS_PROGRESS.get(status, 0.0))
        now = to_storage(utcnow())

        changes = {
            "status":           status.value,
            "current_location": location,
            "current_city":     city,
            "current_state":    state,
            "progress_percent": progress,
            "updated_at":       now,
        }
        if request.lat is not None and request.lng is not None:
            changes["current_lat"], changes["current_lng"] = request.lat, request.lng
        if status == DeliveryStatus.DELIVERED:
            changes["delivered_at"] = now

        await db.deliveries.update_one({"delivery_id": delivery_id}, {"$set": changes})
        await _record_history(
            delivery_id,
            status,
            location,
            request.description or f"Status atualizado para {label(status)}",
            HistorySource.MANUAL,
            city=city,
            state=state,
            lat=request.lat,
            lng=request.lng,
            progress_percent=progress,
        )
        if is_terminal(status):
            await _discard_pending(delivery_id)

        logger.info("Statut de %s forcé : %s → %s", delivery_id, delivery["status"], status.value)
        updated = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0})
    return _public(updated)


async def process_due_events(now: Optional[datetime] = None,
                             limit: int = settings.PROCESS_EVENTS_BATCH_SIZE) -> ProcessReport:
    """Applique les événements dont l'heure est passée, par ordre chronologique."""
    cutoff = to_storage(now or utcnow())
    events = await db.scheduled_events.find(
        {"executed": False, "scheduled_for": {"$lte": cutoff}}, {"_id": 0},
    ).sort([("scheduled_for", 1), ("sequence", 1)]).limit(limit).to_list(length=limit)

    report = ProcessReport(total=len(events))
    for event in events:
        delivery_id = event["delivery_id"]
        try:
            async with _lock(delivery_id):
                # Peut avoir été appliqué ou supprimé entre-temps (advance, forçage terminal)
                if not await db.scheduled_events.find_one({"event_id": event["event_id"], "executed": False}, {"_id": 1}):
                    continue
                delivery = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0})
                if not delivery:
                    raise LookupError(f"{DELIVERY_NOT_FOUND}: {delivery_id}")
                if is_terminal(delivery["status"]):
                    await _discard_pending(delivery_id)
                    continue
                await _apply_event(delivery, event)
                report.processed += 1
        except Exception as e:
            logger.exception("Échec de l'application de l'événement %s", event["event_id"])
            report.errors.append(f"{event['event_id']}: {e}")

    if report.total:
        logger.info("Événements appliqués : %d/%d", report.processed, report.total)
    return report


# ── Lecture ───────────────────────────────────────────────────────────────────

async def get_delivery(delivery_id: str) -> dict:
    delivery = await db.deliveries.find_one({"delivery_id": delivery_id}, {"_id": 0})
    if not delivery:
        raise not_found_exception(detail=DELIVERY_NOT_FOUND)
    return _public(delivery)


async def get_pending_schedule(delivery_id: str) -> list[dict]:
    await get_delivery(delivery_id)
    rows = await db.scheduled_events.find(
        {"delivery_id": delivery_id, "executed": False}, {"_id": 0},
    ).sort("sequence", 1).to_list(length=None)
    return [_public(r) for r in rows]


async def get_history(delivery_id: str) -> list[dict]:
    """Historique le plus récent en premier."""
    rows = await db.delivery_history.find(
        {"delivery_id": delivery_id}, {"_id": 0},
    ).sort("created_at", -1).to_list(length=None)
    return [_public(r) for r in rows]


async def track(tracking_code: str) -> dict:
    delivery = await db.deliveries.find_one({"tracking_code": tracking_code.strip().upper()}, {"_id": 0})
    if not delivery:
        raise not_found_exception(detail=DELIVERY_NOT_FOUND)
    status = DeliveryStatus(delivery["status"])
    public_fields = (
        "tracking_code", "status", "current_location", "current_lat", "current_lng",
        "progress_percent", "recipient_name", "origin_city", "origin_state",
        "destination_city", "destination_state", "estimated_delivery",
        "delivered_at", "package_description", "created_at",
    )
    view = _public({k: delivery.get(k) for k in public_fields})
    return {
        "delivery": {**view, "status_label": label(status)},
        "history": await get_history(delivery["delivery_id"]),
    }
