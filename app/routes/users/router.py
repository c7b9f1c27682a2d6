# app/routes/users/router.py

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import commit_or_conflict, get_db
from app.models.all_models import (
    Ambulance, AmbulanceStatus, Emergency, Message, Payment, User, UserRole,
)
from app.schemas.common import envelope
from app.schemas.user import UserResponse, UserUpdateRequest
from app.services.permissions import Action, authorize, user_relations
from app.utils.auth import get_current_user, require_admin, require_roles
from app.utils.errors import Conflict, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def _get_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@router.get("/")
def list_users(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    users = db.query(User).order_by(User.created_at.desc()).all()
    return envelope([UserResponse.model_validate(u) for u in users], count=len(users))


@router.get("/drivers")
def list_drivers(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.ADMIN, UserRole.HOSPITAL_ADMIN])),
):
    drivers = db.query(User).filter(User.role == UserRole.DRIVER).order_by(User.name).all()
    return envelope([UserResponse.model_validate(u) for u in drivers], count=len(drivers))


@router.get("/{user_id}")
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = _get_user(db, user_id)
    authorize(Action.VIEW_USER, user_relations(current_user, user))
    return envelope(UserResponse.model_validate(user))


@router.put("/{user_id}")
def update_user(
    user_id: UUID,
    user_data: UserUpdateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = _get_user(db, user_id)
    updates = user_data.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in updates:
        updates["email"] = updates["email"].lower()
        if db.query(User).filter(User.email == updates["email"], User.id != user.id).first():
            raise Conflict("Email already in use")
    if "phone" in updates:
        if db.query(User).filter(User.phone == updates["phone"], User.id != user.id).first():
            raise Conflict("Phone number already in use")

    for field, value in updates.items():
        setattr(user, field, value)
    commit_or_conflict(db, duplicate="Email or phone number already in use")
    return envelope(UserResponse.model_validate(user))


@router.delete("/{user_id}")
def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = _get_user(db, user_id)

    has_history = (
        db.query(Emergency.id)
        .filter(or_(Emergency.patient_id == user.id, Emergency.requested_by_id == user.id))
        .first()
        or db.query(Payment.id).filter(Payment.patient_id == user.id).first()
        or db.query(Message.id)
        .filter(or_(Message.sender_id == user.id, Message.receiver_id == user.id))
        .first()
    )
    if has_history:
        raise Conflict("User has emergency, payment or message records and cannot be removed")

    driven = db.query(Ambulance).filter(Ambulance.driver_id == user.id).all()
    if any(a.status == AmbulanceStatus.BUSY for a in driven):
        raise Conflict("User is driving an ambulance on an active emergency")

    for ambulance in driven:
        ambulance.driver = None
        ambulance.status = AmbulanceStatus.OFFLINE

    user.administered_hospitals = []
    db.delete(user)
    db.commit()
    logger.info("User %s removed by %s", user_id, admin.id)
    return envelope(message="User removed")
