# app/services/hospitals.py
"""Maintenance rules shared by the hospital and ambulance routes.

Administrators are promoted to hospital_admin when attached to a hospital and
demoted back to user once they administer none. Ambulance membership follows
Ambulance.hospital, so moving an ambulance pulls it from the old hospital's
list and pushes it onto the new one.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.all_models import Ambulance, Hospital, User, UserRole
from app.utils.errors import ValidationError

logger = logging.getLogger(__name__)


def load_administrators(db: Session, user_ids: Iterable) -> List[User]:
    ids = list(dict.fromkeys(user_ids))
    users = db.query(User).filter(User.id.in_(ids)).all() if ids else []
    if len(users) != len(ids):
        raise ValidationError("One or more administrators not found")
    return users


def promote(users: Iterable[User]) -> None:
    for user in users:
        # platform admins keep their role
        if user.role != UserRole.ADMIN:
            user.role = UserRole.HOSPITAL_ADMIN


def demote_if_orphaned(users: Iterable[User], leaving: Hospital) -> None:
    """Demote hospital admins whose only hospital is `leaving`."""
    for user in users:
        if user.role != UserRole.HOSPITAL_ADMIN:
            continue
        others = [h for h in user.administered_hospitals if h.id != leaving.id]
        if not others:
            user.role = UserRole.USER
            logger.info("Demoted %s to user after leaving hospital %s", user.id, leaving.id)


def replace_administrators(hospital: Hospital, new_admins: List[User]) -> None:
    current_ids = {u.id for u in hospital.administrators}
    new_ids = {u.id for u in new_admins}

    removed = [u for u in hospital.administrators if u.id not in new_ids]
    added = [u for u in new_admins if u.id not in current_ids]

    demote_if_orphaned(removed, hospital)
    promote(added)
    hospital.administrators = list(new_admins)


def move_ambulance(ambulance: Ambulance, hospital: Optional[Hospital]) -> None:
    old = ambulance.hospital
    if old is not None and hospital is not None and old.id == hospital.id:
        return
    ambulance.hospital = hospital
    logger.info(
        "Ambulance %s moved from hospital %s to %s",
        ambulance.registration_number,
        old.id if old is not None else None,
        hospital.id if hospital is not None else None,
    )


def retire_hospital(db: Session, hospital: Hospital) -> None:
    """Demote its orphaned administrators, detach its ambulances and delete it."""
    demote_if_orphaned(list(hospital.administrators), hospital)
    for ambulance in list(hospital.ambulances):
        ambulance.hospital = None
    for emergency in list(hospital.emergencies):
        emergency.hospital = None
    for payment in list(hospital.payments):
        payment.hospital = None
    hospital.administrators = []
    db.delete(hospital)
