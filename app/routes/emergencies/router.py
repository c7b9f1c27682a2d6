# app/routes/emergencies/router.py

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.all_models import (
    Ambulance, Emergency, EmergencyStatus, Message, User, UserRole,
)
from app.schemas.ambulance import AmbulanceResponse
from app.schemas.common import HospitalSummary, envelope, page_envelope
from app.schemas.emergency import (
    AssignRequest,
    EmergencyCreateRequest,
    EmergencyResponse,
    FeedbackRequest,
    StatusUpdateRequest,
    TimelineEntryResponse,
)
from app.schemas.message import MessageCreateRequest, MessageResponse
from app.services.container import Services, get_services
from app.services.lifecycle import EmergencyLifecycle
from app.services.permissions import (
    Action, administered_hospital_ids, authorize, emergency_relations,
)
from app.utils.auth import get_current_user, require_verified
from app.utils.errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/emergencies", tags=["Emergencies"])


def get_lifecycle(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> EmergencyLifecycle:
    return EmergencyLifecycle(db, services)


def _get_emergency(db: Session, emergency_id: UUID) -> Emergency:
    emergency = db.get(Emergency, emergency_id)
    if not emergency:
        raise NotFound("Emergency not found")
    return emergency

# ================================
# CREATE & LIST
# ================================

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_emergency(
    request: EmergencyCreateRequest,
    current_user: User = Depends(require_verified),
    lifecycle: EmergencyLifecycle = Depends(get_lifecycle),
):
    pickup = request.location.pickup
    destination = request.location.destination
    emergency = lifecycle.report(
        current_user,
        patient_id=request.patient_id,
        severity=request.severity,
        emergency_type=request.emergency_type,
        pickup_address=pickup.address,
        pickup_lat=pickup.coordinates.lat,
        pickup_lng=pickup.coordinates.lng,
        destination_address=destination.address if destination else None,
        destination_lat=destination.coordinates.lat if destination and destination.coordinates else None,
        destination_lng=destination.coordinates.lng if destination and destination.coordinates else None,
        symptoms=request.symptoms,
        medical_notes=request.medical_notes,
    )
    return envelope(EmergencyResponse.model_validate(emergency))


@router.get("/")
def list_emergencies(
    status_filter: Optional[EmergencyStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Emergencies visible to the caller, newest first."""
    query = db.query(Emergency)

    if current_user.role == UserRole.USER:
        query = query.filter(or_(
            Emergency.patient_id == current_user.id,
            Emergency.requested_by_id == current_user.id,
        ))
    elif current_user.role == UserRole.DRIVER:
        driven = db.query(Ambulance.id).filter(Ambulance.driver_id == current_user.id)
        query = query.filter(Emergency.ambulance_id.in_(driven))
    elif current_user.role == UserRole.HOSPITAL_ADMIN:
        query = query.filter(Emergency.hospital_id.in_(administered_hospital_ids(db, current_user)))

    if status_filter:
        query = query.filter(Emergency.status == status_filter)
    if start_date and end_date:
        query = query.filter(Emergency.created_at >= start_date, Emergency.created_at <= end_date)

    total = query.count()
    emergencies = query.order_by(Emergency.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return page_envelope([EmergencyResponse.model_validate(e) for e in emergencies], total, page, limit)

# ================================
# SINGLE EMERGENCY
# ================================

@router.get("/{emergency_id}")
def get_emergency(
    emergency_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    emergency = _get_emergency(db, emergency_id)
    authorize(Action.VIEW_EMERGENCY, emergency_relations(current_user, emergency))
    return envelope(EmergencyResponse.model_validate(emergency))


@router.put("/{emergency_id}/assign")
def assign_ambulance(
    emergency_id: UUID,
    request: AssignRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: EmergencyLifecycle = Depends(get_lifecycle),
):
    result = lifecycle.assign(emergency_id, request.ambulance_id, current_user, hospital_id=request.hospital_id)
    return envelope({
        "emergency": EmergencyResponse.model_validate(result.emergency),
        "ambulance": AmbulanceResponse.model_validate(result.ambulance),
        "hospital": HospitalSummary.model_validate(result.hospital) if result.hospital else None,
    })


@router.put("/{emergency_id}/status")
def update_emergency_status(
    emergency_id: UUID,
    request: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: EmergencyLifecycle = Depends(get_lifecycle),
):
    emergency = lifecycle.update_status(emergency_id, request.status, current_user, notes=request.notes)
    return envelope({
        "status": emergency.status.value,
        "timeline": [TimelineEntryResponse.model_validate(t) for t in emergency.timeline],
    })


@router.post("/{emergency_id}/feedback")
def add_feedback(
    emergency_id: UUID,
    request: FeedbackRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: EmergencyLifecycle = Depends(get_lifecycle),
):
    emergency = lifecycle.add_feedback(emergency_id, request.rating, current_user, comment=request.comment)
    return envelope(emergency.feedback)

# ================================
# MESSAGES
# ================================

@router.get("/{emergency_id}/messages")
def list_messages(
    emergency_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    emergency = _get_emergency(db, emergency_id)
    authorize(Action.MESSAGE_EMERGENCY, emergency_relations(current_user, emergency))

    messages = (
        db.query(Message)
        .filter(Message.emergency_id == emergency.id)
        .order_by(Message.created_at.asc())
        .all()
    )
    return envelope([MessageResponse.model_validate(m) for m in messages], count=len(messages))


@router.post("/{emergency_id}/messages", status_code=status.HTTP_201_CREATED)
def send_message(
    emergency_id: UUID,
    request: MessageCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    emergency = _get_emergency(db, emergency_id)
    authorize(Action.MESSAGE_EMERGENCY, emergency_relations(current_user, emergency))

    receiver = db.get(User, request.receiver_id)
    if not receiver:
        raise NotFound("Receiver not found")
    if not emergency_relations(receiver, emergency):
        raise ValidationError("Receiver is not a participant in this emergency")

    message = Message(
        emergency=emergency,
        sender=current_user,
        receiver=receiver,
        text=request.text,
        attachments=[a.model_dump() for a in request.attachments],
        lat=request.location.lat if request.location else None,
        lng=request.location.lng if request.location else None,
    )
    db.add(message)
    db.commit()

    payload = MessageResponse.model_validate(message)
    services.side_effects.run(
        "broadcast new-message",
        services.realtime.emit,
        "new-message",
        payload.model_dump(),
        room=str(emergency.id),
    )
    return envelope(payload)


@router.put("/{emergency_id}/messages/{message_id}/read")
def mark_message_read(
    emergency_id: UUID,
    message_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = db.get(Message, message_id)
    if not message or message.emergency_id != emergency_id:
        raise NotFound("Message not found")
    if message.receiver_id != current_user.id:
        raise Forbidden("Only the receiver can mark a message as read")

    message.mark_read()
    db.commit()
    return envelope(MessageResponse.model_validate(message))
