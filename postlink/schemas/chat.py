from datetime import datetime

from pydantic import BaseModel

from postlink.schemas.response import UserBrief


class ChatListItem(BaseModel):
    id: int
    participant: UserBrief
    send_request_id: int | None = None
    delivery_request_id: int | None = None
    status: str
    created_at: datetime


class ChatListResponse(BaseModel):
    data: list[ChatListItem]
