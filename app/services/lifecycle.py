# app/services/lifecycle.py
"""Emergency lifecycle: legal status transitions and their side effects.

Every operation validates first and mutates after, so a failed check leaves
the emergency, its ambulance and its hospital untouched. All writes of one
operation go out in a single commit; SMS, routing and broadcasts run through
the configured side-effect policy and never fail the operation.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.database import commit_or_conflict
from app.models.all_models import (
    Ambulance, AmbulanceStatus, Emergency, EmergencyStatus, Hospital, User, utc_now,
)
from app.services.container import Services
from app.services.permissions import Action, authorize, emergency_relations
from app.utils.errors import Conflict, InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)

S = EmergencyStatus

# next status -> statuses it may be entered from
TRANSITIONS = {
    S.ASSIGNED: frozenset({S.PENDING}),
    S.EN_ROUTE: frozenset({S.ASSIGNED}),
    S.ARRIVED_AT_PATIENT: frozenset({S.ASSIGNED, S.EN_ROUTE}),
    S.TRANSPORTING: frozenset({S.ARRIVED_AT_PATIENT}),
    S.ARRIVED_AT_HOSPITAL: frozenset({S.TRANSPORTING}),
    S.COMPLETED: frozenset({S.ARRIVED_AT_HOSPITAL}),
    S.CANCELLED: frozenset({
        S.PENDING, S.ASSIGNED, S.EN_ROUTE, S.ARRIVED_AT_PATIENT, S.TRANSPORTING, S.ARRIVED_AT_HOSPITAL,
    }),
}

TERMINAL = frozenset({S.COMPLETED, S.CANCELLED})

DEFAULT_ETA = "15-20 minutes"

CONCURRENT_EDIT = "Emergency was modified by another request, please retry"


def can_transition(current: EmergencyStatus, requested: EmergencyStatus) -> bool:
    return current in TRANSITIONS.get(requested, frozenset())


@dataclass
class Assignment:
    emergency: Emergency
    ambulance: Ambulance
    hospital: Optional[Hospital]


class EmergencyLifecycle:
    def __init__(self, db: Session, services: Services):
        self.db = db
        self.maps = services.maps
        self.sms = services.sms
        self.realtime = services.realtime
        self.side_effects = services.side_effects

    def _get(self, model, entity_id, label: str):
        entity = self.db.get(model, entity_id)
        if entity is None:
            raise NotFound(f"{label} not found")
        return entity

    def _broadcast(self, event: str, data: Dict[str, Any], room: Optional[str] = None) -> None:
        self.side_effects.run(f"broadcast {event}", self.realtime.emit, event, data, room=room)

    # ================================
    # CREATE
    # ================================

    def report(self, actor: User, patient_id=None, **fields) -> Emergency:
        """Open a pending emergency for `patient_id` (defaults to the caller)."""
        patient = self._get(User, patient_id, "Patient") if patient_id else actor
        emergency = Emergency(patient_id=patient.id, requested_by_id=actor.id, status=S.PENDING, **fields)
        emergency.record(S.PENDING, f"Emergency requested by {actor.name}")
        self.db.add(emergency)
        commit_or_conflict(self.db, CONCURRENT_EDIT)
        logger.info("Emergency %s reported by %s (severity %s)", emergency.id, actor.id, emergency.severity.value)

        self._broadcast("new-emergency", {
            "emergency_id": emergency.id,
            "severity": emergency.severity.value,
            "location": emergency.location["pickup"],
            "emergency_type": emergency.emergency_type.value,
            "patient_name": patient.name,
        })
        return emergency

    # ================================
    # ASSIGN
    # ================================

    def assign(self, emergency_id, ambulance_id, actor: User, hospital_id=None) -> Assignment:
        emergency = self._get(Emergency, emergency_id, "Emergency")
        hospital = self._get(Hospital, hospital_id, "Hospital") if hospital_id else None

        authorize(Action.ASSIGN_EMERGENCY, emergency_relations(actor, emergency, target_hospital=hospital))

        if not can_transition(emergency.status, S.ASSIGNED):
            raise InvalidTransition(
                emergency.status.value, S.ASSIGNED.value,
                f"Only pending emergencies can be assigned (current status '{emergency.status.value}')",
            )

        ambulance = self._get(Ambulance, ambulance_id, "Ambulance")
        if ambulance.status != AmbulanceStatus.AVAILABLE:
            raise Conflict("Ambulance is not available", ambulance_status=ambulance.status.value)
        if ambulance.driver is None:
            raise Conflict("Ambulance has no assigned driver")
        if hospital is not None and hospital.capacity_available <= 0:
            raise Conflict("Hospital has no available emergency capacity")

        route = self.side_effects.run(
            "route calculation",
            self.maps.calculate_route,
            {"lat": ambulance.current_lat, "lng": ambulance.current_lng},
            {"lat": emergency.pickup_lat, "lng": emergency.pickup_lng},
        )

        emergency.ambulance = ambulance
        emergency.status = S.ASSIGNED
        if hospital is not None:
            emergency.hospital = hospital
            hospital.capacity_available = max(0, hospital.capacity_available - 1)
        if route:
            emergency.route = {
                "distance": route.get("distance"),
                "duration": route.get("duration"),
                "polyline": route.get("polyline"),
            }
        emergency.record(S.ASSIGNED, f"Ambulance {ambulance.registration_number} assigned by {actor.name}")
        ambulance.occupy(emergency.id)

        commit_or_conflict(self.db, CONCURRENT_EDIT)
        logger.info("Emergency %s assigned to ambulance %s", emergency.id, ambulance.registration_number)

        eta = (emergency.route or {}).get("duration") or {}
        patient = emergency.patient
        if patient is not None and patient.phone:
            self.side_effects.run(
                "patient assignment SMS",
                self.sms.send_emergency_confirmation,
                patient.phone, ambulance.registration_number, eta.get("text") or DEFAULT_ETA,
            )
        if ambulance.driver.phone:
            self.side_effects.run(
                "driver assignment SMS",
                self.sms.notify_driver,
                ambulance.driver.phone, emergency.severity.value, emergency.pickup_address,
            )

        self._broadcast("ambulance-assigned", {
            "emergency_id": emergency.id,
            "ambulance_id": ambulance.id,
            "hospital_id": hospital.id if hospital is not None else None,
        })
        self._broadcast("emergency-status-updated", {
            "emergency_id": emergency.id,
            "status": emergency.status.value,
            "timestamp": utc_now(),
        })
        return Assignment(emergency=emergency, ambulance=ambulance, hospital=hospital)

    # ================================
    # STATUS UPDATES
    # ================================

    def update_status(self, emergency_id, next_status, actor: User, notes: Optional[str] = None) -> Emergency:
        emergency = self._get(Emergency, emergency_id, "Emergency")
        try:
            requested = EmergencyStatus(next_status)
        except ValueError:
            raise ValidationError("Invalid status")
        current = emergency.status

        if requested == S.PENDING:
            raise InvalidTransition(current.value, requested.value)
        if requested == S.ASSIGNED:
            raise InvalidTransition(
                current.value, requested.value, "Use the assign operation to assign an ambulance"
            )

        action = Action.CANCEL_EMERGENCY if requested == S.CANCELLED else Action.ADVANCE_EMERGENCY
        authorize(action, emergency_relations(actor, emergency))

        if not can_transition(current, requested):
            raise InvalidTransition(current.value, requested.value)

        emergency.status = requested
        emergency.record(requested, notes or "")

        if requested in TERMINAL:
            ambulance = emergency.ambulance
            if ambulance is not None and ambulance.active_emergency_id == emergency.id:
                ambulance.release()
            if requested == S.COMPLETED and emergency.hospital is not None:
                hospital = emergency.hospital
                hospital.capacity_available = min(hospital.capacity_total, hospital.capacity_available + 1)

        commit_or_conflict(self.db, CONCURRENT_EDIT)
        logger.info("Emergency %s moved %s -> %s by %s", emergency.id, current.value, requested.value, actor.id)

        self._broadcast("emergency-status-updated", {
            "emergency_id": emergency.id,
            "status": requested.value,
            "timestamp": utc_now(),
        })
        return emergency

    # ================================
    # FEEDBACK
    # ================================

    def add_feedback(self, emergency_id, rating: int, actor: User, comment: Optional[str] = None) -> Emergency:
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating is required and must be between 1 and 5")

        emergency = self._get(Emergency, emergency_id, "Emergency")
        authorize(Action.ADD_FEEDBACK, emergency_relations(actor, emergency))

        if emergency.status != S.COMPLETED:
            raise Conflict("Can only add feedback to completed emergencies")
        if emergency.feedback_rating is not None:
            raise Conflict("Feedback has already been submitted for this emergency")

        emergency.feedback_rating = rating
        emergency.feedback_comment = comment
        emergency.feedback_submitted_at = utc_now()

        hospital = emergency.hospital
        if hospital is not None:
            count = hospital.rating_count or 0
            hospital.rating_average = ((hospital.rating_average or 0.0) * count + rating) / (count + 1)
            hospital.rating_count = count + 1

        commit_or_conflict(self.db, CONCURRENT_EDIT)
        return emergency
