from dataclasses import dataclass

from postlink.core.exceptions import InvalidResponseIdError
from postlink.models.enums import OfferType


@dataclass(frozen=True)
class ResponseKey:
    """Composite response id: ``{offerType}_{offerId}_{requestType}_{requestId}``."""

    offer_type: OfferType
    offer_id: int
    request_type: OfferType
    request_id: int

    @classmethod
    def parse(cls, raw: str) -> "ResponseKey":
        parts = raw.split("_")
        if len(parts) != 4:
            raise InvalidResponseIdError()

        offer_type, offer_id, request_type, request_id = parts
        try:
            offer_kind = OfferType(offer_type)
            request_kind = OfferType(request_type)
        except ValueError:
            raise InvalidResponseIdError()
        if offer_kind == request_kind:
            raise InvalidResponseIdError()

        return cls(
            offer_type=offer_kind,
            offer_id=_positive_int(offer_id),
            request_type=request_kind,
            request_id=_positive_int(request_id),
        )

    def format(self) -> str:
        return f"{self.offer_type.value}_{self.offer_id}_{self.request_type.value}_{self.request_id}"

    def __str__(self) -> str:
        return self.format()

    @property
    def send_id(self) -> int:
        return self.offer_id if self.offer_type == OfferType.SEND else self.request_id

    @property
    def delivery_id(self) -> int:
        return self.offer_id if self.offer_type == OfferType.DELIVERY else self.request_id


def _positive_int(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise InvalidResponseIdError()
    number = int(value)
    if number <= 0:
        raise InvalidResponseIdError()
    return number


def parse_response_ref(raw: str) -> int | ResponseKey:
    """Accept either a plain numeric id or a composite id."""
    raw = raw.strip()
    if raw.isascii() and raw.isdigit():
        return _positive_int(raw)
    return ResponseKey.parse(raw)
