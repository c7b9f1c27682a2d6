# app/services/locator.py
"""Nearest-neighbour lookups over stored coordinates.

A bounding box narrows the rows in SQL, then great-circle distance ranks
them. Hospital lookups top up short result sets from the maps provider.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.models.all_models import (
    Ambulance, AmbulanceStatus, AmbulanceType, Hospital, HospitalStatus,
)
from app.services.maps import MapsClient

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


def bounding_box(lat: float, lng: float, radius_m: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing a circle of radius_m."""
    dlat = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return lat - dlat, lat + dlat, -180.0, 180.0
    dlng = math.degrees(radius_m / (EARTH_RADIUS_M * cos_lat))
    return lat - dlat, lat + dlat, lng - dlng, lng + dlng


def _rank(rows, lat, lng, radius_m, limit, coords) -> List[Tuple[Any, float]]:
    ranked = []
    for row in rows:
        row_lat, row_lng = coords(row)
        distance = haversine_m(lat, lng, row_lat, row_lng)
        if distance <= radius_m:
            ranked.append((row, distance))
    ranked.sort(key=lambda pair: pair[1])
    return ranked[:limit]


def nearest_ambulances(
    db: Session,
    lat: float,
    lng: float,
    max_distance: float = 10000,
    limit: int = 5,
    ambulance_type: Optional[AmbulanceType] = None,
) -> List[Tuple[Ambulance, float]]:
    """Available ambulances within max_distance metres, closest first."""
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, max_distance)
    query = db.query(Ambulance).filter(
        Ambulance.status == AmbulanceStatus.AVAILABLE,
        Ambulance.current_lat.between(min_lat, max_lat),
        Ambulance.current_lng.between(min_lng, max_lng),
    )
    if ambulance_type is not None:
        query = query.filter(Ambulance.type == ambulance_type)
    return _rank(query.all(), lat, lng, max_distance, limit, lambda a: (a.current_lat, a.current_lng))


def nearest_hospitals(
    db: Session, lat: float, lng: float, radius: float = 5000, limit: int = 5
) -> List[Tuple[Hospital, float]]:
    """Active hospitals within radius metres, closest first."""
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius)
    rows = db.query(Hospital).filter(
        Hospital.status == HospitalStatus.ACTIVE,
        Hospital.latitude.between(min_lat, max_lat),
        Hospital.longitude.between(min_lng, max_lng),
    ).all()
    return _rank(rows, lat, lng, radius, limit, lambda h: (h.latitude, h.longitude))


def _name(item) -> str:
    name = item.get("name") if isinstance(item, dict) else getattr(item, "name", None)
    return (name or "").strip().lower()


def merge_results(internal: Sequence, external: Sequence, limit: int) -> list:
    """Internal first, then external entries whose name is not already present."""
    seen = {_name(item) for item in internal}
    merged = list(internal)
    for item in external:
        key = _name(item)
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged[:limit]


@dataclass
class NearbyResult:
    source: str
    items: list = field(default_factory=list)
    error: Optional[str] = None


def find_nearby_hospitals(
    db: Session, maps: MapsClient, lat: float, lng: float, radius: float = 5000, limit: int = 5
) -> NearbyResult:
    """Stored hospitals, topped up from the maps provider when short.

    Internal items are Hospital rows; external items are plain dicts as
    returned by MapsClient.nearby_hospitals.
    """
    internal = [hospital for hospital, _ in nearest_hospitals(db, lat, lng, radius, limit)]
    if len(internal) >= limit:
        return NearbyResult(source="database", items=internal)

    try:
        external = maps.nearby_hospitals({"lat": lat, "lng": lng}, int(radius))
    except Exception as exc:
        logger.warning("Nearby hospital lookup failed, returning stored results only", exc_info=True)
        return NearbyResult(source="database", items=internal, error=str(exc))

    return NearbyResult(source="combined", items=merge_results(internal, external, limit))
