# app/routes/auth/schemas.py

from pydantic import BaseModel, EmailStr, field_validator, Field
from typing import Optional, List
from uuid import UUID
import re

from app.models.all_models import UserRole
from app.schemas.common import Address
from app.schemas.user import EmergencyContact, HealthInfo

# Roles a visitor may pick at sign-up; anything else falls back to user
SELF_SERVICE_ROLES = (UserRole.USER, UserRole.DRIVER, UserRole.HOSPITAL_ADMIN)

# ================================
# REQUEST SCHEMAS
# ================================

class UserSignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=20)
    password: str = Field(..., min_length=6)
    role: Optional[UserRole] = UserRole.USER

    @field_validator('phone')
    def validate_phone(cls, v):
        # Remove any spaces or dashes
        phone = re.sub(r'[\s\-]', '', v)
        if not re.match(r'^\+?\d{7,15}$', phone):
            raise ValueError('Invalid phone number format')
        return phone

    @field_validator('role')
    def restrict_role(cls, v):
        return v if v in SELF_SERVICE_ROLES else UserRole.USER


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class OTPVerificationRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)

    @field_validator('otp')
    def validate_otp(cls, v):
        if not v.isdigit():
            raise ValueError('OTP must only contain numbers')
        return v


class EmailRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=6)


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    password: Optional[str] = Field(None, min_length=6)
    address: Optional[Address] = None
    emergency_contacts: Optional[List[EmergencyContact]] = None
    health_info: Optional[HealthInfo] = None

# ================================
# RESPONSE SCHEMAS
# ================================

class AuthResponse(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str
    role: UserRole
    is_verified: bool
    token: str
    otp_sent: Optional[bool] = None

    class Config:
        from_attributes = True
