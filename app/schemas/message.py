# app/schemas/message.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID

from app.models.all_models import MessageStatus
from app.schemas.common import Coordinates, UserSummary


class Attachment(BaseModel):
    type: str = Field(..., pattern=r'^(image|audio|document|location)$')
    url: str
    metadata: Optional[Dict[str, Any]] = None


class MessageCreateRequest(BaseModel):
    receiver_id: UUID
    text: str = Field(..., min_length=1)
    attachments: List[Attachment] = []
    location: Optional[Coordinates] = None


class MessageResponse(BaseModel):
    id: UUID
    emergency_id: UUID
    sender: UserSummary
    receiver: UserSummary
    text: str
    attachments: List[Attachment] = []
    location: Optional[Coordinates] = None
    status: MessageStatus
    has_media: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
