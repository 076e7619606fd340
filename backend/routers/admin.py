"""
Router admin : création des livraisons, pilotage de la simulation.
"""
from typing import List

from fastapi import APIRouter

from models.delivery import Delivery, DeliveryCreate, HistoryEntry, RegenerateRequest, StatusUpdateRequest
from models.simulation import AdvanceResult, RegenerationReport, RoutePreviewRequest, SimulationConfigUpdate
from services import simulation_service as sim

router = APIRouter()


# ── Livraisons ────────────────────────────────────────────────────────────────

@router.post("/deliveries", status_code=201, summary="Créer une livraison simulée")
async def create_delivery(body: DeliveryCreate):
    return await sim.create_delivery(body)


@router.post("/deliveries/regenerate-history", response_model=RegenerationReport,
             summary="Recalculer les événements futurs")
async def regenerate_history(body: RegenerateRequest):
    return await sim.regenerate_history(ids=body.ids, all_active=body.all)


@router.get("/deliveries/{delivery_id}", response_model=Delivery, summary="Détail d'une livraison")
async def get_delivery(delivery_id: str):
    return await sim.get_delivery(delivery_id)


@router.get("/deliveries/{delivery_id}/history", response_model=List[HistoryEntry],
            summary="Historique (plus récent en premier)")
async def get_history(delivery_id: str):
    await sim.get_delivery(delivery_id)
    return await sim.get_history(delivery_id)


@router.post("/deliveries/{delivery_id}/advance-status", response_model=AdvanceResult,
             summary="Appliquer tout de suite le prochain événement")
async def advance_status(delivery_id: str):
    return await sim.advance_now(delivery_id)


@router.post("/deliveries/{delivery_id}/status", summary="Forcer le statut (hors simulation)")
async def set_status(delivery_id: str, body: StatusUpdateRequest):
    return await sim.set_status(delivery_id, body)


@router.get("/deliveries/{delivery_id}/schedule", summary="Événements encore en attente")
async def pending_schedule(delivery_id: str):
    events = await sim.get_pending_schedule(delivery_id)
    return {"delivery_id": delivery_id, "remaining_updates": len(events), "events": events}


# ── Configuration ─────────────────────────────────────────────────────────────

@router.get("/simulation/config", summary="Configuration active")
async def get_config():
    config = await sim.get_simulation_config()
    return {"config": config, "warnings": sim.config_warnings(config)}


@router.put("/simulation/config", summary="Mettre à jour la configuration")
async def update_config(body: SimulationConfigUpdate):
    config, warnings = await sim.save_simulation_config(body)
    return {"config": config, "warnings": warnings}


@router.post("/simulation/route-preview", summary="Prévisualiser la route vers une destination")
async def route_preview(body: RoutePreviewRequest):
    config = await sim.get_simulation_config()
    return sim.preview_route(
        config,
        body.destination_city,
        body.destination_state.upper(),
        body.destination_lat,
        body.destination_lng,
    )
