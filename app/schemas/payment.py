# app/schemas/payment.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from app.models.all_models import PaymentGateway, PaymentMethod, PaymentStatus
from app.schemas.common import UserSummary, HospitalSummary

# ================================
# REQUEST SCHEMAS
# ================================

class PaymentCreateRequest(BaseModel):
    emergency_id: UUID
    patient_id: Optional[UUID] = None
    hospital_id: Optional[UUID] = None
    amount: float = Field(..., gt=0)
    method: PaymentMethod
    payment_gateway: Optional[PaymentGateway] = PaymentGateway.OTHER
    card_info: Optional[Dict[str, Any]] = None
    insurance_info: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    transaction_id: Optional[str] = None


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: Optional[str] = None

# ================================
# RESPONSE SCHEMAS
# ================================

class RefundInfo(BaseModel):
    amount: float
    reason: Optional[str] = None
    status: Optional[str] = None
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None


class PaymentResponse(BaseModel):
    id: UUID
    payment_id: str
    emergency_id: UUID
    patient: Optional[UserSummary] = None
    hospital: Optional[HospitalSummary] = None
    amount: float
    status: PaymentStatus
    method: PaymentMethod
    transaction_id: Optional[str] = None
    payment_gateway: Optional[PaymentGateway] = None
    card_info: Optional[Dict[str, Any]] = None
    insurance_info: Optional[Dict[str, Any]] = None
    invoice_number: Optional[str] = None
    receipt_url: Optional[str] = None
    notes: Optional[str] = None
    refund: Optional[RefundInfo] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
