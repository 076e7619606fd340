from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from models.common import DeliveryStatus, HistorySource


class Delivery(BaseModel):
    delivery_id:     str
    tracking_code:   str          # "CF123456789BR"
    status:          DeliveryStatus = DeliveryStatus.PENDING
    # Remetente
    sender_name:     Optional[str] = None
    sender_email:    Optional[str] = None
    sender_phone:    Optional[str] = None
    origin_address:  Optional[str] = None
    origin_city:     Optional[str] = None
    origin_state:    Optional[str] = None
    origin_zip:      Optional[str] = None
    # Destinatário
    recipient_name:      str
    recipient_email:     Optional[str] = None
    recipient_phone:     Optional[str] = None
    destination_address: str
    destination_city:    str
    destination_state:   str
    destination_zip:     Optional[str] = None
    destination_lat:     Optional[float] = None
    destination_lng:     Optional[float] = None
    # Pacote
    package_description: Optional[str] = None
    package_weight:      Optional[float] = None
    # Simulation
    auto_simulate:       bool = True
    # Position courante (dernier événement appliqué)
    current_location:    Optional[str] = None
    current_city:        Optional[str] = None
    current_state:       Optional[str] = None
    current_lat:         Optional[float] = None
    current_lng:         Optional[float] = None
    progress_percent:    float = 0.0
    estimated_delivery:  Optional[date] = None
    delivered_at:        Optional[datetime] = None
    # Timestamps
    created_at:          datetime
    updated_at:          datetime


class DeliveryCreate(BaseModel):
    sender_name:         Optional[str] = None
    sender_email:        Optional[str] = None
    sender_phone:        Optional[str] = None
    origin_address:      Optional[str] = None
    origin_city:         Optional[str] = None
    origin_state:        Optional[str] = Field(default=None, max_length=2)
    origin_zip:          Optional[str] = None
    recipient_name:      str = Field(min_length=3)
    recipient_email:     Optional[str] = None
    recipient_phone:     Optional[str] = None
    destination_address: str = Field(min_length=5)
    destination_city:    str = Field(min_length=2)
    destination_state:   str = Field(min_length=2, max_length=2)
    destination_zip:     Optional[str] = None
    destination_lat:     Optional[float] = None
    destination_lng:     Optional[float] = None
    package_description: Optional[str] = None
    package_weight:      Optional[float] = Field(default=None, gt=0)
    auto_simulate:       bool = True

    @field_validator("destination_state", "origin_state")
    @classmethod
    def upper_state(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class HistoryEntry(BaseModel):
    history_id:       str
    delivery_id:      str
    status:           DeliveryStatus
    location:         str
    city:             Optional[str] = None
    state:            Optional[str] = None
    lat:              Optional[float] = None
    lng:              Optional[float] = None
    description:      str
    progress_percent: Optional[float] = None
    source:           HistorySource
    event_id:         Optional[str] = None   # événement programmé d'origine
    created_at:       datetime


class StatusUpdateRequest(BaseModel):
    status:      DeliveryStatus
    description: Optional[str] = None
    location:    Optional[str] = None
    city:        Optional[str] = None
    state:       Optional[str] = Field(default=None, min_length=2, max_length=2)
    lat:         Optional[float] = None
    lng:         Optional[float] = None


class RegenerateRequest(BaseModel):
    ids: Optional[List[str]] = None
    all: bool = False
