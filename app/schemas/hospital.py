# app/schemas/hospital.py
from pydantic import BaseModel, EmailStr, Field, model_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID

from app.models.all_models import HospitalStatus, PaymentMethod
from app.schemas.common import Address, Coordinates, UserSummary


class Capacity(BaseModel):
    total: int = Field(10, ge=0)
    available: int = Field(10, ge=0)

    @model_validator(mode='after')
    def check_bounds(self):
        if self.available > self.total:
            raise ValueError('Available capacity cannot exceed total capacity')
        return self


class Rating(BaseModel):
    average: float = 0
    count: int = 0

# ================================
# REQUEST SCHEMAS
# ================================

class HospitalAddress(Address):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class HospitalCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=20)
    address: HospitalAddress
    location: Coordinates
    administrators: List[UUID] = []
    specialties: List[str] = []
    operating_hours: Optional[Dict[str, Any]] = None
    payment_methods: List[PaymentMethod] = []
    emergency_capacity: Capacity = Capacity()


class HospitalUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    address: Optional[HospitalAddress] = None
    location: Optional[Coordinates] = None
    administrators: Optional[List[UUID]] = None
    specialties: Optional[List[str]] = None
    operating_hours: Optional[Dict[str, Any]] = None
    payment_methods: Optional[List[PaymentMethod]] = None
    status: Optional[HospitalStatus] = None


class CapacityUpdateRequest(BaseModel):
    total: Optional[int] = Field(None, ge=0)
    available: Optional[int] = Field(None, ge=0)

    @model_validator(mode='after')
    def require_one(self):
        if self.total is None and self.available is None:
            raise ValueError('Total or available capacity must be provided')
        return self

# ================================
# RESPONSE SCHEMAS
# ================================

class HospitalResponse(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str
    address: Address
    location: Coordinates
    emergency_capacity: Capacity
    specialties: Optional[List[str]] = None
    operating_hours: Optional[Dict[str, Any]] = None
    payment_methods: Optional[List[str]] = None
    rating: Rating
    status: HospitalStatus
    administrators: List[UserSummary] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NearbyHospital(HospitalResponse):
    source: str = "database"
    distance: Optional[float] = None
