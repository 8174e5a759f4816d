from datetime import datetime

from pydantic import BaseModel


class NotificationItem(BaseModel):
    id: int
    type: str
    title: str
    body: str
    is_read: bool = False
    is_delivered: bool = False
    reference_type: str | None = None
    reference_id: int | None = None
    created_at: datetime


class NotificationMeta(BaseModel):
    page: int
    per_page: int
    total: int
    unread_count: int = 0


class NotificationListResponse(BaseModel):
    data: list[NotificationItem]
    meta: NotificationMeta


class MarkReadResponse(BaseModel):
    id: int
    is_read: bool = True


class MarkAllReadResponse(BaseModel):
    updated_count: int
