"""
Pydantic schemas for in-app notifications and collection toggles.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from app.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    match_id: UUID | None
    from_user_id: UUID | None
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread: int


class CollectionPauseResponse(BaseModel):
    id: UUID
    is_paused: bool
    recompute_queued: bool
