# app/routes/hospitals/router.py

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import commit_or_conflict, get_db
from app.models.all_models import Hospital, HospitalStatus, User, UserRole
from app.schemas.common import envelope, page_envelope
from app.schemas.hospital import (
    CapacityUpdateRequest,
    HospitalCreateRequest,
    HospitalResponse,
    HospitalUpdateRequest,
    NearbyHospital,
)
from app.services.container import Services, get_services
from app.services.hospitals import load_administrators, promote, replace_administrators, retire_hospital
from app.services.locator import find_nearby_hospitals, haversine_m
from app.services.permissions import Action, authorize, hospital_relations
from app.utils.auth import get_current_user, get_optional_user, require_admin
from app.utils.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hospitals", tags=["Hospitals"])

CONCURRENT_EDIT = "Hospital was modified by another request, please retry"


def _get_hospital(db: Session, hospital_id: UUID) -> Hospital:
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        raise NotFound("Hospital not found")
    return hospital


def _is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.ADMIN


def _email_taken(db: Session, email: str, exclude_id=None) -> bool:
    query = db.query(Hospital.id).filter(Hospital.email == email)
    if exclude_id is not None:
        query = query.filter(Hospital.id != exclude_id)
    return query.first() is not None

# ================================
# CREATE & LIST
# ================================

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_hospital(
    hospital_data: HospitalCreateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    email = hospital_data.email.lower()
    if _email_taken(db, email):
        raise Conflict("Hospital with this email already exists")

    administrators = load_administrators(db, hospital_data.administrators)

    hospital = Hospital(
        name=hospital_data.name,
        email=email,
        phone=hospital_data.phone,
        address=hospital_data.address.model_dump(),
        latitude=hospital_data.location.lat,
        longitude=hospital_data.location.lng,
        capacity_total=hospital_data.emergency_capacity.total,
        capacity_available=hospital_data.emergency_capacity.available,
        specialties=hospital_data.specialties,
        operating_hours=hospital_data.operating_hours,
        payment_methods=[m.value for m in hospital_data.payment_methods],
        status=HospitalStatus.ACTIVE,
    )
    hospital.administrators = administrators
    promote(administrators)

    db.add(hospital)
    commit_or_conflict(db, duplicate="Hospital already exists with this email")
    logger.info("Hospital %s created by %s", hospital.id, admin.id)
    return envelope(HospitalResponse.model_validate(hospital))


@router.get("/")
def list_hospitals(
    status_filter: Optional[HospitalStatus] = Query(None, alias="status"),
    specialty: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """Public listing; only admins may look past active hospitals."""
    wanted = status_filter if (status_filter and _is_admin(current_user)) else HospitalStatus.ACTIVE
    query = db.query(Hospital).filter(Hospital.status == wanted).order_by(Hospital.rating_average.desc())

    hospitals = query.all()
    if specialty:
        # specialties is a JSON list, filter in Python to stay backend-neutral
        needle = specialty.lower()
        hospitals = [h for h in hospitals if any(s.lower() == needle for s in (h.specialties or []))]

    total = len(hospitals)
    window = hospitals[(page - 1) * limit: page * limit]
    return page_envelope([HospitalResponse.model_validate(h) for h in window], total, page, limit)


@router.get("/nearby")
def get_nearby_hospitals(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(5000, gt=0),
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = find_nearby_hospitals(db, services.maps, lat, lng, radius, limit)

    data = []
    for item in result.items:
        if isinstance(item, Hospital):
            data.append(NearbyHospital.model_validate({
                **HospitalResponse.model_validate(item).model_dump(),
                "source": "database",
                "distance": round(haversine_m(lat, lng, item.latitude, item.longitude), 1),
            }))
        else:
            data.append(item)

    extra = {"source": result.source, "count": len(data)}
    if result.error:
        extra["error"] = result.error
    return envelope(data, **extra)

# ================================
# SINGLE HOSPITAL
# ================================

@router.get("/{hospital_id}")
def get_hospital(
    hospital_id: UUID,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    hospital = _get_hospital(db, hospital_id)
    if hospital.status != HospitalStatus.ACTIVE and not _is_admin(current_user):
        raise NotFound("Hospital not found")
    return envelope(HospitalResponse.model_validate(hospital))


@router.put("/{hospital_id}")
def update_hospital(
    hospital_id: UUID,
    hospital_data: HospitalUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    hospital = _get_hospital(db, hospital_id)
    relations = hospital_relations(current_user, hospital)
    authorize(Action.MANAGE_HOSPITAL, relations)

    updates = hospital_data.model_dump(exclude_unset=True)

    administrator_ids = updates.pop("administrators", None)
    if administrator_ids is not None:
        authorize(Action.MANAGE_HOSPITAL_ADMINISTRATORS, relations)
        replace_administrators(hospital, load_administrators(db, administrator_ids))

    if updates.get("email"):
        updates["email"] = updates["email"].lower()
        if _email_taken(db, updates["email"], exclude_id=hospital.id):
            raise Conflict("Hospital with this email already exists")

    if updates.get("payment_methods") is not None:
        updates["payment_methods"] = [m.value for m in hospital_data.payment_methods]

    location = updates.pop("location", None)
    if location is not None:
        hospital.latitude = location["lat"]
        hospital.longitude = location["lng"]

    for field, value in updates.items():
        if value is not None:
            setattr(hospital, field, value)

    commit_or_conflict(db, CONCURRENT_EDIT)
    return envelope(HospitalResponse.model_validate(hospital))


@router.delete("/{hospital_id}")
def delete_hospital(
    hospital_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    hospital = _get_hospital(db, hospital_id)
    retire_hospital(db, hospital)
    commit_or_conflict(db, CONCURRENT_EDIT)
    logger.info("Hospital %s removed by %s", hospital_id, admin.id)
    return envelope(message="Hospital removed successfully")


@router.put("/{hospital_id}/capacity")
def update_capacity(
    hospital_id: UUID,
    capacity: CapacityUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    hospital = _get_hospital(db, hospital_id)
    authorize(Action.MANAGE_HOSPITAL, hospital_relations(current_user, hospital))

    total = capacity.total if capacity.total is not None else hospital.capacity_total
    available = capacity.available if capacity.available is not None else hospital.capacity_available
    if available > total:
        raise ValidationError("Available capacity cannot exceed total capacity")

    hospital.capacity_total = total
    hospital.capacity_available = available
    commit_or_conflict(db, CONCURRENT_EDIT)
    return envelope({"emergency_capacity": hospital.emergency_capacity})
