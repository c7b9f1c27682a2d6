# app/schemas/user.py
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from app.models.all_models import UserRole
from app.schemas.common import Address


class EmergencyContact(BaseModel):
    name: str
    relationship: Optional[str] = None
    phone: str


class HealthInfo(BaseModel):
    blood_type: Optional[str] = None
    allergies: List[str] = []
    medical_conditions: List[str] = []
    medications: List[str] = []


class UserResponse(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str
    role: UserRole
    is_verified: bool
    address: Optional[Address] = None
    emergency_contacts: Optional[List[EmergencyContact]] = None
    health_info: Optional[HealthInfo] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserUpdateRequest(BaseModel):
    """Admin-side edit of another account."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    role: Optional[UserRole] = None
    is_verified: Optional[bool] = None
    address: Optional[Address] = None
