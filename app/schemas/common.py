# app/schemas/common.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Any
from uuid import UUID


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Address(BaseModel):
    street: Optional[str] = ""
    city: Optional[str] = ""
    state: Optional[str] = ""
    zip_code: Optional[str] = ""
    country: Optional[str] = ""


class TrackedLocation(Coordinates):
    updated_at: Optional[datetime] = None


class UserSummary(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None

    class Config:
        from_attributes = True


class HospitalSummary(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    address: Optional[Address] = None

    class Config:
        from_attributes = True


# ================================
# ENVELOPES
# ================================

def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def page_envelope(items: list, total: int, page: int, limit: int, **extra) -> dict:
    return {
        "success": True,
        "count": len(items),
        "total": total,
        "total_pages": (total + limit - 1) // limit if limit else 0,
        "current_page": page,
        "data": items,
        **extra,
    }
