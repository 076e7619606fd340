from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field

from config import settings
from models.common import DeliveryStatus, EventType, Location, StopType


class SimulationConfig(BaseModel):
    origin_company_name: str           = "Cargo Flash"
    origin_address:      Optional[str] = None
    origin_city:         str           = "São Paulo"
    origin_state:        str           = Field(default="SP", min_length=2, max_length=2)
    origin_zip:          Optional[str] = None
    origin_lat:          float         = -23.5505
    origin_lng:          float         = -46.6333
    min_delivery_days:   int           = Field(default=15, ge=1)
    max_delivery_days:   int           = Field(default=19, ge=1)
    update_start_hour:   int           = Field(default=8, ge=0, le=23)
    update_end_hour:     int           = Field(default=18, ge=0, le=23)   # exclusif
    updated_at:          Optional[datetime] = None

    @classmethod
    def from_settings(cls) -> "SimulationConfig":
        return cls(
            origin_company_name=settings.ORIGIN_COMPANY_NAME,
            origin_address=settings.ORIGIN_ADDRESS,
            origin_city=settings.ORIGIN_CITY,
            origin_state=settings.ORIGIN_STATE,
            origin_zip=settings.ORIGIN_ZIP,
            origin_lat=settings.ORIGIN_LAT,
            origin_lng=settings.ORIGIN_LNG,
            min_delivery_days=settings.MIN_DELIVERY_DAYS,
            max_delivery_days=settings.MAX_DELIVERY_DAYS,
            update_start_hour=settings.UPDATE_START_HOUR,
            update_end_hour=settings.UPDATE_END_HOUR,
        )


class SimulationConfigUpdate(BaseModel):
    origin_company_name: Optional[str]   = None
    origin_address:      Optional[str]   = None
    origin_city:         Optional[str]   = None
    origin_state:        Optional[str]   = Field(default=None, min_length=2, max_length=2)
    origin_zip:          Optional[str]   = None
    origin_lat:          Optional[float] = None
    origin_lng:          Optional[float] = None
    min_delivery_days:   Optional[int]   = Field(default=None, ge=1)
    max_delivery_days:   Optional[int]   = Field(default=None, ge=1)
    update_start_hour:   Optional[int]   = Field(default=None, ge=0, le=23)
    update_end_hour:     Optional[int]   = Field(default=None, ge=0, le=23)


# ── Route ─────────────────────────────────────────────────────────────────────

class RouteWaypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    location:             Location
    order:                int
    stop_type:            StopType
    distance_from_origin: float      # km, cumulés le long de la chaîne
    cumulative_progress:  float      # 0 → 100
    description:          str


class Route(BaseModel):
    origin:         RouteWaypoint
    destination:    RouteWaypoint
    waypoints:      List[RouteWaypoint]
    total_distance: float            # km, origine → destination à vol d'oiseau
    walk_distance:  float            # km, somme des tronçons
    total_days:     int
    warnings:       List[str] = []

    @property
    def stops(self) -> List[RouteWaypoint]:
        """Escales intermédiaires (hubs et villes de passage)."""
        return self.waypoints[1:-1]

    @property
    def hubs(self) -> List[RouteWaypoint]:
        return [wp for wp in self.stops if wp.stop_type == StopType.HUB]


class ScheduledUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence:         int
    scheduled_for:    datetime
    event_type:       EventType
    new_status:       Optional[DeliveryStatus] = None
    waypoint:         RouteWaypoint
    description:      str
    progress_percent: float


class SchedulePlan(BaseModel):
    route:    Optional[Route] = None
    updates:  List[ScheduledUpdate] = []
    warnings: List[str] = []


class RoutePreviewRequest(BaseModel):
    destination_city:  str = Field(min_length=2)
    destination_state: str = Field(min_length=2, max_length=2)
    destination_lat:   Optional[float] = None
    destination_lng:   Optional[float] = None


# ── Résultats des opérations admin ───────────────────────────────────────────

class AdvanceOutcome(str, Enum):
    APPLIED          = "applied"
    ALREADY_TERMINAL = "already_terminal"
    NOTHING_PENDING  = "nothing_pending"


class AdvanceResult(BaseModel):
    outcome:           AdvanceOutcome
    delivery_id:       str
    status:            DeliveryStatus
    event:             Optional[dict] = None
    remaining_updates: int = 0
    message:           str = ""


class RegenerationReport(BaseModel):
    requested:        int = 0
    regenerated:      int = 0
    events_created:   int = 0
    skipped_terminal: List[str] = []
    errors:           List[str] = []
    aborted:          bool = False


class ProcessReport(BaseModel):
    processed: int = 0
    total:     int = 0
    errors:    List[str] = []
