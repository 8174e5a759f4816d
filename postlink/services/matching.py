"""Counterpart search for newly created requests."""

import logging

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.models.enums import OfferType
from postlink.models.request import REQUEST_MODELS, SIZE_NOT_SPECIFIED, AnyRequest
from postlink.models.response import Response
from postlink.services import store
from postlink.services.responses import create_matching_response

logger = logging.getLogger(__name__)


def size_specified(size_type: str | None) -> bool:
    return bool(size_type) and size_type != SIZE_NOT_SPECIFIED


def sizes_compatible(a: str | None, b: str | None) -> bool:
    if not size_specified(a) or not size_specified(b):
        return True
    return a == b


def is_candidate(new_request: AnyRequest, candidate: AnyRequest) -> bool:
    """Pure form of the candidate predicate used by ``find_candidates``."""
    return (
        candidate.kind == new_request.kind.opposite
        and candidate.user_id != new_request.user_id
        and candidate.from_location_id == new_request.from_location_id
        and candidate.to_location_id == new_request.to_location_id
        and candidate.from_date <= new_request.to_date
        and candidate.to_date >= new_request.from_date
        and sizes_compatible(new_request.size_type, candidate.size_type)
    )


async def find_candidates(db: AsyncSession, new_request: AnyRequest) -> list[AnyRequest]:
    """Open counterpart requests on the same route whose dates overlap."""
    kind = new_request.kind.opposite
    model = REQUEST_MODELS[kind]

    criteria = [
        model.user_id != new_request.user_id,
        model.from_date <= new_request.to_date,
        model.to_date >= new_request.from_date,
    ]
    if size_specified(new_request.size_type):
        criteria.append(
            or_(
                model.size_type.is_(None),
                model.size_type == "",
                model.size_type == SIZE_NOT_SPECIFIED,
                model.size_type == new_request.size_type,
            )
        )

    return await store.find_open_for_route(
        db, kind, new_request.from_location_id, new_request.to_location_id, *criteria
    )


async def match_request(db: AsyncSession, new_request: AnyRequest) -> list[Response]:
    """Create a matching response for every candidate of ``new_request``.

    The delivery owner always receives the response and the send request is
    always the offered side, whichever of the two was created first.
    """
    candidates = await find_candidates(db, new_request)
    responses = []
    for candidate in candidates:
        if new_request.kind == OfferType.SEND:
            send, delivery = new_request, candidate
        else:
            send, delivery = candidate, new_request

        response = await create_matching_response(
            db,
            receiving_user_id=delivery.user_id,
            offering_user_id=send.user_id,
            offer_type=OfferType.SEND,
            request_id=delivery.id,
            offer_id=send.id,
        )
        responses.append(response)

    logger.info(
        "Matching for %s request %s finished: %d candidates",
        new_request.kind.value,
        new_request.id,
        len(candidates),
    )
    return responses
