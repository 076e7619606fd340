"""
Router tracking : suivi public (sans authentification).
"""
from fastapi import APIRouter, Request

from core.exceptions import bad_request_exception
from core.limiter import limiter
from services.simulation_service import track

router = APIRouter()

MIN_CODE_LENGTH = 8


@router.get("/{tracking_code}", summary="Statut public d'une livraison")
@limiter.limit("60/minute")
async def track_delivery(request: Request, tracking_code: str):
    if len(tracking_code.strip()) < MIN_CODE_LENGTH:
        raise bad_request_exception("Código de rastreamento inválido")
    return await track(tracking_code)
