# app/schemas/emergency.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID

from app.models.all_models import EmergencyStatus, EmergencyType, Severity
from app.schemas.common import Coordinates, UserSummary, HospitalSummary


class LocationPoint(BaseModel):
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class Pickup(LocationPoint):
    address: str = Field(..., min_length=1)
    coordinates: Coordinates


class EmergencyLocation(BaseModel):
    pickup: Pickup
    destination: Optional[LocationPoint] = None

# ================================
# REQUEST SCHEMAS
# ================================

class EmergencyCreateRequest(BaseModel):
    severity: Severity
    location: EmergencyLocation
    symptoms: List[str] = []
    medical_notes: Optional[str] = ""
    emergency_type: EmergencyType = EmergencyType.OTHER
    patient_id: Optional[UUID] = None


class AssignRequest(BaseModel):
    ambulance_id: UUID
    hospital_id: Optional[UUID] = None


class StatusUpdateRequest(BaseModel):
    status: EmergencyStatus
    notes: Optional[str] = None


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

# ================================
# RESPONSE SCHEMAS
# ================================

class TimelineEntryResponse(BaseModel):
    status: str
    time: datetime
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class AmbulanceBrief(BaseModel):
    id: UUID
    registration_number: str
    type: str
    driver: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class PaymentInfo(BaseModel):
    amount: Optional[float] = None
    status: Optional[str] = None
    method: Optional[str] = None
    transaction_id: Optional[str] = None


class Feedback(BaseModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: Optional[datetime] = None


class EmergencyResponse(BaseModel):
    id: UUID
    status: EmergencyStatus
    severity: Severity
    emergency_type: EmergencyType
    patient: UserSummary
    requested_by: UserSummary
    ambulance: Optional[AmbulanceBrief] = None
    hospital: Optional[HospitalSummary] = None
    location: EmergencyLocation
    symptoms: Optional[List[str]] = None
    medical_notes: Optional[str] = None
    timeline: List[TimelineEntryResponse] = []
    route: Optional[Dict[str, Any]] = None
    payment: Optional[PaymentInfo] = None
    feedback: Optional[Feedback] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
