"""
Router cron : déclenchement manuel du job d'application des événements dus.
"""
from fastapi import APIRouter

from models.simulation import ProcessReport
from services.simulation_service import process_due_events

router = APIRouter()


@router.post("/process-events", response_model=ProcessReport, summary="Appliquer les événements dus")
async def process_events():
    return await process_due_events()
