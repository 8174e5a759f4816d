from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from postlink.core.database import Base
from postlink.models.enums import DualStatus, OfferType, ResponseStatus, ResponseType, str_enum

_MATCHING_ACTIVE_SQL = text("response_type = 'matching' AND overall_status IN ('pending', 'partial', 'accepted')")
_MANUAL_ACTIVE_SQL = text("response_type = 'manual' AND overall_status IN ('pending', 'partial', 'accepted')")


class Response(Base):
    """A proposed pairing between a request and an offered counterpart.

    Matching responses always land in the deliverer's inbox: ``user_id`` is the
    delivery owner, ``responder_id`` the send owner, ``offer_id`` the send
    request and ``request_id`` the delivery request. Manual responses are
    addressed to the owner of ``offer_id``; ``request_id`` is 0.
    """

    __tablename__ = "responses"
    __table_args__ = (
        Index(
            "uq_responses_matching_active",
            "offer_type",
            "offer_id",
            "request_id",
            unique=True,
            postgresql_where=_MATCHING_ACTIVE_SQL,
            sqlite_where=_MATCHING_ACTIVE_SQL,
        ),
        Index(
            "uq_responses_manual_active",
            "responder_id",
            "offer_type",
            "offer_id",
            unique=True,
            postgresql_where=_MANUAL_ACTIVE_SQL,
            sqlite_where=_MANUAL_ACTIVE_SQL,
        ),
        Index("ix_responses_user_status", "user_id", "overall_status"),
        Index("ix_responses_responder_status", "responder_id", "overall_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    responder_id: Mapped[int] = mapped_column(Integer, nullable=False)
    response_type: Mapped[ResponseType] = mapped_column(str_enum(ResponseType), default=ResponseType.MATCHING)
    offer_type: Mapped[OfferType] = mapped_column(str_enum(OfferType), nullable=False)
    offer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    request_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deliverer_status: Mapped[DualStatus] = mapped_column(str_enum(DualStatus), default=DualStatus.PENDING)
    sender_status: Mapped[DualStatus] = mapped_column(str_enum(DualStatus), default=DualStatus.PENDING)
    overall_status: Mapped[ResponseStatus] = mapped_column(str_enum(ResponseStatus), default=ResponseStatus.PENDING)
    chat_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def request_type(self) -> OfferType:
        return self.offer_type.opposite
