from datetime import date, datetime

from pydantic import BaseModel, Field


class CreateRequestBody(BaseModel):
    from_location_id: int = Field(gt=0)
    to_location_id: int = Field(gt=0)
    from_date: date
    to_date: date
    size_type: str | None = Field(None, max_length=50)
    price: int | None = Field(None, ge=0)
    currency: str | None = Field(None, max_length=10)
    description: str | None = Field(None, max_length=1000)


class RequestItem(BaseModel):
    id: int
    type: str
    from_location_id: int
    to_location_id: int
    from_date: date
    to_date: date
    size_type: str | None = None
    price: int | None = None
    currency: str | None = None
    description: str | None = None
    status: str
    matched_request_id: int | None = None
    created_at: datetime


class RequestListResponse(BaseModel):
    data: list[RequestItem]


class RequestDeleted(BaseModel):
    id: int
    deleted: bool = True
