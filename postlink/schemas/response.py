from datetime import datetime

from pydantic import BaseModel, Field

from postlink.models.enums import OfferType


class CreateManualResponseRequest(BaseModel):
    offer_type: OfferType
    request_id: int = Field(gt=0)
    message: str | None = Field(None, max_length=1000)
    amount: int | None = Field(None, ge=0)
    currency: str | None = Field(None, max_length=10)


class UserBrief(BaseModel):
    id: int
    name: str | None = None
    username: str | None = None


class ResponseItem(BaseModel):
    id: int
    key: str | None = None
    response_type: str
    offer_type: str
    offer_id: int
    request_id: int
    role: str | None = None
    deliverer_status: str
    sender_status: str
    overall_status: str
    chat_id: int | None = None
    message: str | None = None
    amount: int | None = None
    currency: str | None = None
    counterpart: UserBrief | None = None
    created_at: datetime


class ResponseListResponse(BaseModel):
    data: list[ResponseItem]


class ResponseActionResult(BaseModel):
    id: int
    overall_status: str
    deliverer_status: str
    sender_status: str
    chat_id: int | None = None


class ResponseCancelled(BaseModel):
    cancelled: bool
