"""Who plays which role in a response.

Every response has exactly two parties: the sender (owner of the send side)
and the deliverer (owner of the delivery side). Which of ``user_id`` and
``responder_id`` holds which role depends on the response type and on the kind
of request being offered, so all role questions go through ``resolve_parties``.
"""

import enum
from dataclasses import dataclass

from postlink.models.enums import DualStatus, OfferType, ResponseStatus, ResponseType
from postlink.models.response import Response


class Role(str, enum.Enum):
    SENDER = "sender"
    DELIVERER = "deliverer"


@dataclass(frozen=True)
class Parties:
    sender_id: int
    deliverer_id: int

    def role_of(self, user_id: int) -> Role | None:
        if user_id == self.sender_id:
            return Role.SENDER
        if user_id == self.deliverer_id:
            return Role.DELIVERER
        return None

    def other(self, user_id: int) -> int:
        return self.deliverer_id if user_id == self.sender_id else self.sender_id


def resolve_parties(
    response_type: ResponseType,
    offer_type: OfferType,
    user_id: int,
    responder_id: int,
) -> Parties:
    # Matching: the responder offered its request. Manual: the responder targets user_id's request.
    if response_type == ResponseType.MATCHING:
        offer_owner, other = responder_id, user_id
    else:
        offer_owner, other = user_id, responder_id

    if offer_type == OfferType.SEND:
        return Parties(sender_id=offer_owner, deliverer_id=other)
    return Parties(sender_id=other, deliverer_id=offer_owner)


def parties_of(response: Response) -> Parties:
    return resolve_parties(response.response_type, response.offer_type, response.user_id, response.responder_id)


def user_role(response: Response, user_id: int) -> Role | None:
    return parties_of(response).role_of(user_id)


def role_status(response: Response, role: Role) -> DualStatus:
    return response.sender_status if role == Role.SENDER else response.deliverer_status


def set_role_status(response: Response, role: Role, value: DualStatus) -> None:
    if role == Role.SENDER:
        response.sender_status = value
    else:
        response.deliverer_status = value


def aggregate_status(deliverer_status: DualStatus, sender_status: DualStatus) -> ResponseStatus:
    """Overall status derived from the two per-role statuses."""
    statuses = (deliverer_status, sender_status)
    if DualStatus.REJECTED in statuses:
        return ResponseStatus.REJECTED
    if statuses == (DualStatus.ACCEPTED, DualStatus.ACCEPTED):
        return ResponseStatus.ACCEPTED
    if DualStatus.ACCEPTED in statuses:
        return ResponseStatus.PARTIAL
    return ResponseStatus.PENDING


def touched_requests(response: Response) -> dict[OfferType, int]:
    """Request ids a response refers to, keyed by request kind.

    Manual responses only touch the offered (target) request.
    """
    touched = {response.offer_type: response.offer_id}
    if response.response_type == ResponseType.MATCHING and response.request_id:
        touched[response.offer_type.opposite] = response.request_id
    return touched
