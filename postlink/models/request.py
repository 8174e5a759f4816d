from datetime import date, datetime, timezone
from typing import ClassVar

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from postlink.core.database import Base
from postlink.models.enums import OfferType, RequestStatus, str_enum

SIZE_NOT_SPECIFIED = "Не указана"


class RequestMixin:
    """Columns shared by send and delivery requests."""

    kind: ClassVar[OfferType]

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    from_location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    to_location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    size_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[RequestStatus] = mapped_column(str_enum(RequestStatus), default=RequestStatus.OPEN)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def matched_counterpart_id(self) -> int | None:
        raise NotImplementedError

    @matched_counterpart_id.setter
    def matched_counterpart_id(self, value: int | None) -> None:
        raise NotImplementedError


class SendRequest(RequestMixin, Base):
    __tablename__ = "send_requests"
    __table_args__ = (Index("ix_send_requests_route_status", "from_location_id", "to_location_id", "status"),)

    kind = OfferType.SEND

    matched_delivery_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def matched_counterpart_id(self) -> int | None:
        return self.matched_delivery_id

    @matched_counterpart_id.setter
    def matched_counterpart_id(self, value: int | None) -> None:
        self.matched_delivery_id = value


class DeliveryRequest(RequestMixin, Base):
    __tablename__ = "delivery_requests"
    __table_args__ = (Index("ix_delivery_requests_route_status", "from_location_id", "to_location_id", "status"),)

    kind = OfferType.DELIVERY

    matched_send_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def matched_counterpart_id(self) -> int | None:
        return self.matched_send_id

    @matched_counterpart_id.setter
    def matched_counterpart_id(self, value: int | None) -> None:
        self.matched_send_id = value


AnyRequest = SendRequest | DeliveryRequest

REQUEST_MODELS: dict[OfferType, type[AnyRequest]] = {
    OfferType.SEND: SendRequest,
    OfferType.DELIVERY: DeliveryRequest,
}
