# app/services/permissions.py
"""Capability checks keyed by (action, relationship to the resource).

Routes and services resolve how the caller relates to a resource, then ask
whether any of those relationships grants the action. Nothing here touches
HTTP, so the table can be tested directly.
"""
import enum
from typing import FrozenSet, Iterable, Optional, Set

from sqlalchemy.orm import Session

from app.models.all_models import Ambulance, Emergency, Hospital, Payment, User, UserRole
from app.utils.errors import Forbidden


class Action(str, enum.Enum):
    VIEW_EMERGENCY = "view_emergency"
    ASSIGN_EMERGENCY = "assign_emergency"
    ADVANCE_EMERGENCY = "advance_emergency"
    CANCEL_EMERGENCY = "cancel_emergency"
    ADD_FEEDBACK = "add_feedback"
    MESSAGE_EMERGENCY = "message_emergency"
    MANAGE_HOSPITAL = "manage_hospital"
    MANAGE_HOSPITAL_ADMINISTRATORS = "manage_hospital_administrators"
    VIEW_AMBULANCE = "view_ambulance"
    MANAGE_AMBULANCE = "manage_ambulance"
    OPERATE_AMBULANCE = "operate_ambulance"
    VIEW_PAYMENT = "view_payment"
    VIEW_USER = "view_user"


class Relation(str, enum.Enum):
    ADMIN = "admin"
    PATIENT = "patient"
    REQUESTER = "requester"
    ASSIGNED_DRIVER = "assigned_driver"
    HOSPITAL_ADMIN = "hospital_admin"
    SELF = "self"


POLICY = {
    Action.VIEW_EMERGENCY: frozenset({
        Relation.ADMIN, Relation.PATIENT, Relation.REQUESTER, Relation.ASSIGNED_DRIVER, Relation.HOSPITAL_ADMIN,
    }),
    Action.ASSIGN_EMERGENCY: frozenset({Relation.ADMIN, Relation.HOSPITAL_ADMIN}),
    Action.ADVANCE_EMERGENCY: frozenset({Relation.ADMIN, Relation.ASSIGNED_DRIVER}),
    Action.CANCEL_EMERGENCY: frozenset({Relation.ADMIN, Relation.PATIENT, Relation.REQUESTER}),
    Action.ADD_FEEDBACK: frozenset({Relation.PATIENT, Relation.REQUESTER}),
    Action.MESSAGE_EMERGENCY: frozenset({
        Relation.ADMIN, Relation.PATIENT, Relation.REQUESTER, Relation.ASSIGNED_DRIVER, Relation.HOSPITAL_ADMIN,
    }),
    Action.MANAGE_HOSPITAL: frozenset({Relation.ADMIN, Relation.HOSPITAL_ADMIN}),
    Action.MANAGE_HOSPITAL_ADMINISTRATORS: frozenset({Relation.ADMIN}),
    Action.VIEW_AMBULANCE: frozenset({
        Relation.ADMIN, Relation.HOSPITAL_ADMIN, Relation.ASSIGNED_DRIVER, Relation.PATIENT, Relation.REQUESTER,
    }),
    Action.MANAGE_AMBULANCE: frozenset({Relation.ADMIN, Relation.HOSPITAL_ADMIN}),
    Action.OPERATE_AMBULANCE: frozenset({Relation.ASSIGNED_DRIVER}),
    Action.VIEW_PAYMENT: frozenset({Relation.ADMIN, Relation.PATIENT, Relation.HOSPITAL_ADMIN}),
    Action.VIEW_USER: frozenset({Relation.ADMIN, Relation.SELF}),
}

DENIAL_MESSAGES = {
    Action.VIEW_EMERGENCY: "Not authorized to access this emergency",
    Action.ASSIGN_EMERGENCY: "Not authorized to assign ambulance",
    Action.ADVANCE_EMERGENCY: "Not authorized to update this emergency status",
    Action.CANCEL_EMERGENCY: "Not authorized to cancel this emergency",
    Action.ADD_FEEDBACK: "Not authorized to add feedback to this emergency",
    Action.MESSAGE_EMERGENCY: "Not authorized to message on this emergency",
    Action.MANAGE_HOSPITAL: "Not authorized to update hospital",
    Action.MANAGE_HOSPITAL_ADMINISTRATORS: "Only admin can update hospital administrators",
    Action.VIEW_AMBULANCE: "Not authorized to view this ambulance",
    Action.MANAGE_AMBULANCE: "Not authorized to update this ambulance",
    Action.OPERATE_AMBULANCE: "Not authorized to operate this ambulance",
    Action.VIEW_PAYMENT: "Not authorized to access this payment",
    Action.VIEW_USER: "Not authorized to access this resource",
}


def is_allowed(action: Action, relations: Iterable[Relation]) -> bool:
    return bool(POLICY[action] & set(relations))


def authorize(action: Action, relations: Iterable[Relation]) -> None:
    if not is_allowed(action, relations):
        raise Forbidden(DENIAL_MESSAGES[action])


def _administers(user: User, hospital: Optional[Hospital]) -> bool:
    return (
        hospital is not None
        and user.role == UserRole.HOSPITAL_ADMIN
        and hospital.is_administered_by(user)
    )


# ================================
# RELATIONSHIP RESOLVERS
# ================================

def emergency_relations(
    user: User, emergency: Emergency, target_hospital: Optional[Hospital] = None
) -> FrozenSet[Relation]:
    """How `user` relates to `emergency`.

    `target_hospital` overrides the emergency's own hospital when deciding
    hospital-admin standing, as assignment does.
    """
    relations: Set[Relation] = set()
    if user.role == UserRole.ADMIN:
        relations.add(Relation.ADMIN)
    if emergency.patient_id == user.id:
        relations.add(Relation.PATIENT)
    if emergency.requested_by_id == user.id:
        relations.add(Relation.REQUESTER)
    if emergency.ambulance is not None and emergency.ambulance.driver_id == user.id:
        relations.add(Relation.ASSIGNED_DRIVER)
    if _administers(user, target_hospital if target_hospital is not None else emergency.hospital):
        relations.add(Relation.HOSPITAL_ADMIN)
    return frozenset(relations)


def hospital_relations(user: Optional[User], hospital: Hospital) -> FrozenSet[Relation]:
    relations: Set[Relation] = set()
    if user is None:
        return frozenset()
    if user.role == UserRole.ADMIN:
        relations.add(Relation.ADMIN)
    if _administers(user, hospital):
        relations.add(Relation.HOSPITAL_ADMIN)
    return frozenset(relations)


def ambulance_relations(
    user: User, ambulance: Ambulance, active_emergency: Optional[Emergency] = None
) -> FrozenSet[Relation]:
    """How `user` relates to `ambulance`, including through the emergency it is serving."""
    relations: Set[Relation] = set()
    if user.role == UserRole.ADMIN:
        relations.add(Relation.ADMIN)
    if ambulance.driver_id is not None and ambulance.driver_id == user.id:
        relations.add(Relation.ASSIGNED_DRIVER)
    if _administers(user, ambulance.hospital):
        relations.add(Relation.HOSPITAL_ADMIN)
    if active_emergency is not None:
        if active_emergency.patient_id == user.id:
            relations.add(Relation.PATIENT)
        if active_emergency.requested_by_id == user.id:
            relations.add(Relation.REQUESTER)
    return frozenset(relations)


def payment_relations(user: User, payment: Payment) -> FrozenSet[Relation]:
    relations: Set[Relation] = set()
    if user.role == UserRole.ADMIN:
        relations.add(Relation.ADMIN)
    if payment.patient_id == user.id:
        relations.add(Relation.PATIENT)
    if _administers(user, payment.hospital):
        relations.add(Relation.HOSPITAL_ADMIN)
    return frozenset(relations)


def user_relations(user: User, target: User) -> FrozenSet[Relation]:
    relations: Set[Relation] = set()
    if user.role == UserRole.ADMIN:
        relations.add(Relation.ADMIN)
    if user.id == target.id:
        relations.add(Relation.SELF)
    return frozenset(relations)


def administered_hospital_ids(db: Session, user: User) -> list:
    """Ids of the hospitals `user` administers."""
    return [
        row[0]
        for row in db.query(Hospital.id).filter(Hospital.administrators.any(User.id == user.id)).all()
    ]
