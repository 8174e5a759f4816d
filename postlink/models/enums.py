import enum

from sqlalchemy import Enum as SAEnum


class OfferType(str, enum.Enum):
    """Kind of a request; also names which request a response offers."""

    SEND = "send"
    DELIVERY = "delivery"

    @property
    def opposite(self) -> "OfferType":
        return OfferType.DELIVERY if self is OfferType.SEND else OfferType.SEND


class RequestStatus(str, enum.Enum):
    OPEN = "open"
    HAS_RESPONSES = "has_responses"
    MATCHED = "matched"
    MATCHED_MANUALLY = "matched_manually"
    COMPLETED = "completed"
    CLOSED = "closed"


class ResponseType(str, enum.Enum):
    MATCHING = "matching"
    MANUAL = "manual"


class DualStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ResponseStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CLOSED = "closed"


class ChatStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CLOSED = "closed"


# Status groups shared by queries and guards
REQUEST_MATCHABLE = (RequestStatus.OPEN, RequestStatus.HAS_RESPONSES)
REQUEST_LOCKED = (RequestStatus.MATCHED, RequestStatus.MATCHED_MANUALLY, RequestStatus.COMPLETED)
RESPONSE_ACTIONABLE = (ResponseStatus.PENDING, ResponseStatus.PARTIAL)
RESPONSE_ACTIVE = (ResponseStatus.PENDING, ResponseStatus.PARTIAL, ResponseStatus.ACCEPTED)


def str_enum(enum_cls: type[enum.Enum], length: int = 20) -> SAEnum:
    """Store an enum as its plain string value in a VARCHAR column."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
    )
