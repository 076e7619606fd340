import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from core.limiter import limiter
from database import connect_db, close_db

# Routers
from routers import admin, cron, tracking

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _process_due_events_loop(interval: int) -> None:
    """
    Toutes les `interval` secondes : applique les événements programmés dont
    l'heure est passée (statut, position, historique).
    """
    from services.simulation_service import process_due_events
    while True:
        await asyncio.sleep(interval)
        try:
            report = await process_due_events()
            if report.errors:
                logger.warning(f"Job événements : {len(report.errors)} erreur(s) sur {report.total}")
        except Exception as exc:
            logger.error(f"Erreur job événements : {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await connect_db()
    task = None
    if settings.PROCESS_EVENTS_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(_process_due_events_loop(settings.PROCESS_EVENTS_INTERVAL_SECONDS))
    logger.info("CargoFlash API started")
    yield
    # Shutdown
    if task:
        task.cancel()
    await close_db()
    logger.info("CargoFlash API stopped")


app = FastAPI(
    title="CargoFlash API",
    description="Simulation et suivi de livraisons (Brésil)",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers publics
app.include_router(tracking.router, prefix="/api/tracking", tags=["Tracking"])

# Routers administration et job
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "app": "cargoflash", "version": "1.0.0"}
