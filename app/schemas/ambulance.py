# app/schemas/ambulance.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from app.models.all_models import AmbulanceStatus, AmbulanceType
from app.schemas.common import Coordinates, TrackedLocation, UserSummary, HospitalSummary

# ================================
# REQUEST SCHEMAS
# ================================

class AmbulanceCreateRequest(BaseModel):
    registration_number: str = Field(..., min_length=1, max_length=30)
    type: AmbulanceType = AmbulanceType.BASIC
    capacity: Optional[int] = Field(2, ge=1)
    features: List[str] = []
    hospital_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None
    current_location: Coordinates
    maintenance_schedule: Optional[datetime] = None
    device_token: Optional[str] = None


class AmbulanceUpdateRequest(BaseModel):
    """Generic edit; status and the active emergency have dedicated operations."""
    registration_number: Optional[str] = Field(None, min_length=1, max_length=30)
    type: Optional[AmbulanceType] = None
    capacity: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    hospital_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None
    last_maintenance_date: Optional[datetime] = None
    maintenance_schedule: Optional[datetime] = None
    mileage: Optional[float] = Field(None, ge=0)
    device_token: Optional[str] = None


class AmbulanceStatusUpdate(BaseModel):
    status: AmbulanceStatus

# ================================
# RESPONSE SCHEMAS
# ================================

class AmbulanceResponse(BaseModel):
    id: UUID
    registration_number: str
    type: AmbulanceType
    capacity: Optional[int] = None
    features: Optional[List[str]] = None
    status: AmbulanceStatus
    current_location: TrackedLocation
    driver: Optional[UserSummary] = None
    hospital: Optional[HospitalSummary] = None
    active_emergency_id: Optional[UUID] = None
    last_maintenance_date: Optional[datetime] = None
    maintenance_schedule: Optional[datetime] = None
    mileage: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NearestAmbulance(AmbulanceResponse):
    distance: float
