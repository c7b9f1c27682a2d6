# app/routes/ambulances/router.py

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import commit_or_conflict, get_db
from app.models.all_models import (
    Ambulance, AmbulanceStatus, AmbulanceType, Emergency, Hospital, User, UserRole, utc_now,
)
from app.schemas.ambulance import (
    AmbulanceCreateRequest,
    AmbulanceResponse,
    AmbulanceStatusUpdate,
    AmbulanceUpdateRequest,
    NearestAmbulance,
)
from app.schemas.common import Coordinates, envelope
from app.services.container import Services, get_services
from app.services.hospitals import move_ambulance
from app.services.locator import nearest_ambulances
from app.services.permissions import (
    Action, administered_hospital_ids, ambulance_relations, authorize, hospital_relations,
)
from app.utils.auth import get_current_user, require_admin, require_roles
from app.utils.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ambulances", tags=["Ambulances"])

CONCURRENT_EDIT = "Ambulance was modified by another request, please retry"


def _get_ambulance(db: Session, ambulance_id: UUID) -> Ambulance:
    ambulance = db.get(Ambulance, ambulance_id)
    if not ambulance:
        raise NotFound("Ambulance not found")
    return ambulance


def _get_hospital_for(db: Session, hospital_id: UUID, user: User) -> Hospital:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFound("Hospital not found")
    authorize(Action.MANAGE_HOSPITAL, hospital_relations(user, hospital))
    return hospital


def _get_driver(db: Session, driver_id: UUID) -> User:
    driver = db.get(User, driver_id)
    if not driver:
        raise NotFound("Driver not found")
    if driver.role != UserRole.DRIVER:
        raise ValidationError("User is not a driver")
    return driver


def _registration_taken(db: Session, registration_number: str, exclude_id=None) -> bool:
    query = db.query(Ambulance.id).filter(Ambulance.registration_number == registration_number)
    if exclude_id is not None:
        query = query.filter(Ambulance.id != exclude_id)
    return query.first() is not None

# ================================
# CREATE & LIST
# ================================

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_ambulance(
    ambulance_data: AmbulanceCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.ADMIN, UserRole.HOSPITAL_ADMIN])),
):
    if _registration_taken(db, ambulance_data.registration_number):
        raise Conflict("Ambulance with this registration number already exists")

    hospital = _get_hospital_for(db, ambulance_data.hospital_id, current_user) if ambulance_data.hospital_id else None
    if hospital is None and current_user.role == UserRole.HOSPITAL_ADMIN:
        raise ValidationError("Hospital admins must register ambulances to a hospital they administer")
    driver = _get_driver(db, ambulance_data.driver_id) if ambulance_data.driver_id else None

    ambulance = Ambulance(
        registration_number=ambulance_data.registration_number,
        type=ambulance_data.type,
        capacity=ambulance_data.capacity,
        features=ambulance_data.features,
        driver=driver,
        current_lat=ambulance_data.current_location.lat,
        current_lng=ambulance_data.current_location.lng,
        location_updated_at=utc_now(),
        maintenance_schedule=ambulance_data.maintenance_schedule,
        device_token=ambulance_data.device_token,
        # A crewed ambulance starts on shift
        status=AmbulanceStatus.AVAILABLE if driver else AmbulanceStatus.OFFLINE,
    )
    if hospital is not None:
        hospital.ambulances.append(ambulance)
    db.add(ambulance)
    commit_or_conflict(db, duplicate="Ambulance with this registration number already exists")
    logger.info("Ambulance %s registered by %s", ambulance.registration_number, current_user.id)
    return envelope(AmbulanceResponse.model_validate(ambulance))


@router.get("/")
def list_ambulances(
    status_filter: Optional[AmbulanceStatus] = Query(None, alias="status"),
    type_filter: Optional[AmbulanceType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.ADMIN, UserRole.HOSPITAL_ADMIN, UserRole.DRIVER])),
):
    """Admins see the whole fleet, hospital admins their hospitals' ambulances, drivers their own."""
    query = db.query(Ambulance)
    if current_user.role == UserRole.HOSPITAL_ADMIN:
        query = query.filter(Ambulance.hospital_id.in_(administered_hospital_ids(db, current_user)))
    elif current_user.role == UserRole.DRIVER:
        query = query.filter(Ambulance.driver_id == current_user.id)

    if status_filter:
        query = query.filter(Ambulance.status == status_filter)
    if type_filter:
        query = query.filter(Ambulance.type == type_filter)

    ambulances = query.order_by(Ambulance.updated_at.desc()).all()
    return envelope([AmbulanceResponse.model_validate(a) for a in ambulances], count=len(ambulances))


@router.get("/nearest")
def get_nearest_ambulances(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    max_distance: float = Query(10000, gt=0, alias="maxDistance"),
    limit: int = Query(5, ge=1, le=50),
    type_filter: Optional[AmbulanceType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ranked = nearest_ambulances(db, lat, lng, max_distance, limit, type_filter)
    data = [
        NearestAmbulance.model_validate({**AmbulanceResponse.model_validate(a).model_dump(), "distance": round(d, 1)})
        for a, d in ranked
    ]
    return envelope(data, count=len(data))

# ================================
# SINGLE AMBULANCE
# ================================

@router.get("/{ambulance_id}")
def get_ambulance(
    ambulance_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ambulance = _get_ambulance(db, ambulance_id)
    active = db.get(Emergency, ambulance.active_emergency_id) if ambulance.active_emergency_id else None
    authorize(Action.VIEW_AMBULANCE, ambulance_relations(current_user, ambulance, active))
    return envelope(AmbulanceResponse.model_validate(ambulance))


@router.put("/{ambulance_id}")
def update_ambulance(
    ambulance_id: UUID,
    ambulance_data: AmbulanceUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.ADMIN, UserRole.HOSPITAL_ADMIN])),
):
    ambulance = _get_ambulance(db, ambulance_id)
    authorize(Action.MANAGE_AMBULANCE, ambulance_relations(current_user, ambulance))

    updates = ambulance_data.model_dump(exclude_unset=True)
    hospital_id = updates.pop("hospital_id", None)
    driver_changed = "driver_id" in updates
    driver_id = updates.pop("driver_id", None)

    if "registration_number" in updates:
        if _registration_taken(db, updates["registration_number"], exclude_id=ambulance.id):
            raise Conflict("Ambulance with this registration number already exists")

    if hospital_id is not None:
        move_ambulance(ambulance, _get_hospital_for(db, hospital_id, current_user))

    if driver_changed and driver_id != ambulance.driver_id:
        if ambulance.status == AmbulanceStatus.BUSY:
            raise Conflict("Cannot change the driver of an ambulance on an active emergency")
        ambulance.driver = _get_driver(db, driver_id) if driver_id else None
        if ambulance.driver is None and ambulance.status == AmbulanceStatus.AVAILABLE:
            ambulance.status = AmbulanceStatus.OFFLINE

    for field, value in updates.items():
        if value is not None:
            setattr(ambulance, field, value)

    commit_or_conflict(db, CONCURRENT_EDIT)
    return envelope(AmbulanceResponse.model_validate(ambulance))


@router.delete("/{ambulance_id}")
def delete_ambulance(
    ambulance_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    ambulance = _get_ambulance(db, ambulance_id)
    if ambulance.status == AmbulanceStatus.BUSY:
        raise Conflict("Ambulance is on an active emergency and cannot be removed")

    move_ambulance(ambulance, None)
    for emergency in list(ambulance.emergencies):
        emergency.ambulance = None
    db.delete(ambulance)
    commit_or_conflict(db, CONCURRENT_EDIT)
    logger.info("Ambulance %s removed by %s", ambulance.registration_number, admin.id)
    return envelope(message="Ambulance removed successfully")

# ================================
# DRIVER OPERATIONS
# ================================

@router.put("/{ambulance_id}/location")
def update_location(
    ambulance_id: UUID,
    location: Coordinates,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.DRIVER])),
    services: Services = Depends(get_services),
):
    ambulance = _get_ambulance(db, ambulance_id)
    authorize(Action.OPERATE_AMBULANCE, ambulance_relations(current_user, ambulance))

    ambulance.current_lat = location.lat
    ambulance.current_lng = location.lng
    ambulance.location_updated_at = utc_now()
    commit_or_conflict(db, CONCURRENT_EDIT)

    services.side_effects.run(
        "broadcast ambulance-location-updated",
        services.realtime.emit,
        "ambulance-location-updated",
        {"ambulance_id": ambulance.id, "location": ambulance.current_location},
    )
    return envelope({"location": ambulance.current_location})


@router.put("/{ambulance_id}/status")
def update_status(
    ambulance_id: UUID,
    status_data: AmbulanceStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles([UserRole.DRIVER])),
):
    ambulance = _get_ambulance(db, ambulance_id)
    authorize(Action.OPERATE_AMBULANCE, ambulance_relations(current_user, ambulance))

    requested = status_data.status
    if requested == ambulance.status:
        return envelope({"status": ambulance.status.value})
    if requested == AmbulanceStatus.BUSY:
        raise ValidationError("Ambulances become busy only through emergency assignment")
    if ambulance.status == AmbulanceStatus.BUSY and ambulance.active_emergency_id is not None:
        raise Conflict("Ambulance is on an active emergency")

    ambulance.status = requested
    commit_or_conflict(db, CONCURRENT_EDIT)
    return envelope({"status": ambulance.status.value})
