from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    entity_type: str | None
    entity_id: int | None
    is_read: bool
    created_at: datetime


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationListOut(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int
    pagination: PaginationOut
