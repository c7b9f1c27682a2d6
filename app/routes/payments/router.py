# app/routes/payments/router.py

import logging
import time
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.database import commit_or_conflict, get_db
from app.models.all_models import (
    Emergency, Hospital, Payment, PaymentMethod, PaymentStatus, User, UserRole, as_utc, utc_now,
)
from app.schemas.common import envelope, page_envelope
from app.schemas.payment import (
    PaymentCreateRequest,
    PaymentResponse,
    PaymentStatusUpdate,
    RefundRequest,
)
from app.services.permissions import Action, administered_hospital_ids, authorize, payment_relations
from app.utils.auth import get_current_user, require_admin
from app.utils.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

CONCURRENT_EDIT = "Emergency was modified by another request, please retry"


def _get_payment(db: Session, payment_id: UUID) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFound("Payment not found")
    return payment


def _mirror_to_emergency(payment: Payment) -> None:
    emergency = payment.emergency
    if emergency is None:
        return
    emergency.payment_amount = payment.amount
    emergency.payment_status = payment.status.value
    emergency.payment_method = payment.method.value
    if payment.transaction_id:
        emergency.payment_transaction_id = payment.transaction_id

# ================================
# CREATE & LIST
# ================================

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_payment(
    payment_data: PaymentCreateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    emergency = db.get(Emergency, payment_data.emergency_id)
    if not emergency:
        raise NotFound("Emergency not found")

    patient_id = payment_data.patient_id or emergency.patient_id
    if not db.get(User, patient_id):
        raise NotFound("Patient not found")

    hospital_id = payment_data.hospital_id or emergency.hospital_id
    if hospital_id and not db.get(Hospital, hospital_id):
        raise NotFound("Hospital not found")

    payment = Payment(
        emergency=emergency,
        patient_id=patient_id,
        hospital_id=hospital_id,
        amount=payment_data.amount,
        method=payment_data.method,
        status=PaymentStatus.PENDING,
        payment_gateway=payment_data.payment_gateway,
        card_info=payment_data.card_info,
        insurance_info=payment_data.insurance_info,
        notes=payment_data.notes,
    )
    payment.issue_invoice_number()
    db.add(payment)
    _mirror_to_emergency(payment)
    commit_or_conflict(db, CONCURRENT_EDIT)
    logger.info("Payment %s created for emergency %s", payment.payment_id, emergency.id)
    return envelope(PaymentResponse.model_validate(payment))


@router.get("/")
def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    method: Optional[PaymentMethod] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Payment)
    if current_user.role == UserRole.HOSPITAL_ADMIN:
        query = query.filter(Payment.hospital_id.in_(administered_hospital_ids(db, current_user)))
    elif current_user.role != UserRole.ADMIN:
        query = query.filter(Payment.patient_id == current_user.id)

    if status_filter:
        query = query.filter(Payment.status == status_filter)
    if method:
        query = query.filter(Payment.method == method)
    if start_date and end_date:
        query = query.filter(Payment.created_at >= start_date, Payment.created_at <= end_date)

    total = query.count()
    payments = query.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return page_envelope([PaymentResponse.model_validate(p) for p in payments], total, page, limit)


@router.get("/summary")
def payment_summary(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Completed totals per method and counts per status, last 30 days by default."""
    end = as_utc(end_date) if end_date else utc_now()
    start = as_utc(start_date) if start_date else end - timedelta(days=30)
    in_range = (Payment.created_at >= start, Payment.created_at <= end)

    by_method = (
        db.query(Payment.method, func.sum(Payment.amount), func.count(Payment.id))
        .filter(*in_range, Payment.status == PaymentStatus.COMPLETED)
        .group_by(Payment.method)
        .all()
    )
    by_status = (
        db.query(Payment.status, func.count(Payment.id))
        .filter(*in_range)
        .group_by(Payment.status)
        .all()
    )

    summary = [
        {"method": m.value, "total_amount": float(total or 0), "count": count}
        for m, total, count in by_method
    ]
    return envelope({
        "time_range": {"start_date": start, "end_date": end},
        "summary": summary,
        "total_amount": sum(row["total_amount"] for row in summary),
        "status_counts": [{"status": s.value, "count": count} for s, count in by_status],
        "total_transactions": sum(row["count"] for row in summary),
    })

# ================================
# SINGLE PAYMENT
# ================================

@router.get("/{payment_id}")
def get_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payment = _get_payment(db, payment_id)
    authorize(Action.VIEW_PAYMENT, payment_relations(current_user, payment))
    return envelope(PaymentResponse.model_validate(payment))


@router.put("/{payment_id}/status")
def update_payment_status(
    payment_id: UUID,
    status_data: PaymentStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if status_data.status == PaymentStatus.REFUNDED:
        raise ValidationError("Use the refund endpoint to refund a payment")

    payment = _get_payment(db, payment_id)
    if payment.status == PaymentStatus.REFUNDED:
        raise Conflict("Payment has been refunded")

    if status_data.transaction_id:
        taken = (
            db.query(Payment.id)
            .filter(Payment.transaction_id == status_data.transaction_id, Payment.id != payment.id)
            .first()
        )
        if taken:
            raise Conflict("Transaction id already recorded on another payment")
        payment.transaction_id = status_data.transaction_id

    payment.status = status_data.status
    if payment.status == PaymentStatus.COMPLETED and not payment.receipt_url:
        payment.receipt_url = f"{settings.RECEIPT_BASE_URL.rstrip('/')}/{payment.id}"

    _mirror_to_emergency(payment)
    commit_or_conflict(db, CONCURRENT_EDIT)
    return envelope(PaymentResponse.model_validate(payment))


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: UUID,
    refund: RefundRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    payment = _get_payment(db, payment_id)
    if payment.status != PaymentStatus.COMPLETED:
        raise Conflict("Only completed payments can be refunded")

    refunded = round((payment.refund_amount or 0) + refund.amount, 2)
    if refunded > round(payment.amount, 2):
        raise ValidationError(
            "Invalid refund amount",
            refundable=round(payment.amount - (payment.refund_amount or 0), 2),
        )

    payment.refund_amount = refunded
    payment.refund_reason = refund.reason or "Customer request"
    payment.refund_status = "completed"
    payment.refund_transaction_id = f"REF-{int(time.time() * 1000)}"
    payment.refund_processed_at = utc_now()
    if refunded >= round(payment.amount, 2):
        payment.status = PaymentStatus.REFUNDED

    _mirror_to_emergency(payment)
    commit_or_conflict(db, CONCURRENT_EDIT)
    logger.info("Refunded %.2f on payment %s", refund.amount, payment.payment_id)
    return envelope(PaymentResponse.model_validate(payment))
