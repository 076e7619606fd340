from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class DeliveryStatus(str, Enum):
    PENDING          = "pending"
    COLLECTED        = "collected"
    IN_TRANSIT       = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED        = "delivered"
    FAILED           = "failed"
    RETURNED         = "returned"


class EventType(str, Enum):
    STATUS_CHANGE   = "status_change"
    LOCATION_UPDATE = "location_update"


class StopType(str, Enum):
    ORIGIN      = "origin"
    HUB         = "hub"          # Centre de distribution régional
    TRANSIT     = "transit"
    DESTINATION = "destination"


class HistorySource(str, Enum):
    CREATION   = "creation"
    SIMULATION = "simulation"     # événement programmé appliqué
    MANUAL     = "manual"         # forçage admin


class Location(BaseModel):
    """Ville résolue : immuable, coordonnées jamais nulles."""
    model_config = ConfigDict(frozen=True)

    city:   str
    state:  str = Field(min_length=2, max_length=2)   # UF, ex. "SP"
    lat:    float
    lng:    float
    is_hub: bool = False

    @property
    def label(self) -> str:
        return f"{self.city}, {self.state}"
