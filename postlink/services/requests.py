"""
Request lifecycle: quota and duplicate checks, creation, deletion, closing.
"""

import logging
from datetime import date
from typing import Any

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.config import settings
from postlink.core.database import atomic
from postlink.core.exceptions import (
    DuplicateRouteError,
    InvalidDateRangeError,
    QuotaExceededError,
    RequestNotClosableError,
    RequestNotDeletableError,
    RequestNotFoundError,
)
from postlink.models.enums import REQUEST_LOCKED, RESPONSE_ACTIVE, OfferType, RequestStatus, ResponseStatus
from postlink.models.request import REQUEST_MODELS, AnyRequest
from postlink.models.user import User
from postlink.services import store
from postlink.services.matching import match_request
from postlink.services.notifications import NEW_RESPONSE, notify_all
from postlink.services.parties import touched_requests
from postlink.services.responses import recompute_request_status

logger = logging.getLogger(__name__)

REQUEST_FIELDS = (
    "from_location_id",
    "to_location_id",
    "from_date",
    "to_date",
    "size_type",
    "price",
    "currency",
    "description",
)


async def check_active_requests_limit(db: AsyncSession, user: User, max_active: int | None = None) -> None:
    """Raise QuotaExceededError if the user already holds too many non-closed requests."""
    if max_active is None:
        max_active = settings.MAX_ACTIVE_REQUESTS
    active = await store.count_active_by_user(db, user.id)
    if active >= max_active:
        raise QuotaExceededError()


async def check_duplicate_route(
    db: AsyncSession,
    user: User,
    from_location_id: int,
    to_location_id: int,
    on_date: date,
    kind: OfferType,
) -> None:
    existing = await store.find_active_by_user_and_route(
        db, user.id, kind, from_location_id, to_location_id, on_date
    )
    if existing is not None:
        raise DuplicateRouteError()


def can_delete_request(request: AnyRequest) -> bool:
    return request.status not in REQUEST_LOCKED


def can_close_request(request: AnyRequest) -> bool:
    return request.status in (RequestStatus.MATCHED, RequestStatus.MATCHED_MANUALLY)


async def get_user_request(db: AsyncSession, user: User, kind: OfferType, request_id: int) -> AnyRequest:
    request = await store.get_request(db, kind, request_id)
    if request is None or request.user_id != user.id:
        raise RequestNotFoundError()
    return request


async def list_active_requests(db: AsyncSession, user: User) -> list[AnyRequest]:
    requests: list[AnyRequest] = []
    for kind in (OfferType.SEND, OfferType.DELIVERY):
        requests.extend(await store.list_user_requests(db, user.id, kind))
    requests.sort(key=lambda r: r.created_at, reverse=True)
    return requests


async def create_request(db: AsyncSession, user: User, kind: OfferType, data: dict[str, Any]) -> AnyRequest:
    """Validate, persist and match a new request, then notify matched users."""
    fields = {name: data.get(name) for name in REQUEST_FIELDS}
    if fields["from_date"] > fields["to_date"]:
        raise InvalidDateRangeError()

    async with atomic(db):
        await check_active_requests_limit(db, user)
        await check_duplicate_route(
            db, user, fields["from_location_id"], fields["to_location_id"], fields["from_date"], kind
        )

        request = REQUEST_MODELS[kind](user_id=user.id, status=RequestStatus.OPEN, **fields)
        db.add(request)
        await db.flush()

        responses = await match_request(db, request)

    logger.info(
        "%s request %s created by user %s (%d matches)",
        kind.value.capitalize(),
        request.id,
        user.id,
        len(responses),
    )
    await notify_all(db, [(r.user_id, NEW_RESPONSE, r.id) for r in responses])
    return request


async def _lock_pair(db: AsyncSession, request: AnyRequest) -> dict[OfferType, AnyRequest]:
    # Lock order: send, then delivery.
    ids = {request.kind: request.id}
    if request.matched_counterpart_id:
        ids[request.kind.opposite] = request.matched_counterpart_id

    locked = {}
    for kind in (OfferType.SEND, OfferType.DELIVERY):
        if kind in ids:
            row = await store.get_request(db, kind, ids[kind], for_update=True)
            if row is not None:
                locked[kind] = row
    if request.kind not in locked:
        raise RequestNotFoundError()
    return locked


async def delete_request(db: AsyncSession, request: AnyRequest) -> None:
    """Delete a request together with every response that refers to it."""
    if not can_delete_request(request):
        raise RequestNotDeletableError()

    kind, request_id = request.kind, request.id
    async with atomic(db):
        locked = await store.get_request(db, kind, request_id, for_update=True)
        if locked is None:
            raise RequestNotFoundError()
        if not can_delete_request(locked):
            raise RequestNotDeletableError()

        responses = await store.find_where(db, store.touching(kind, request_id))
        affected: set[tuple[OfferType, int]] = set()
        for response in responses:
            for other_kind, other_id in touched_requests(response).items():
                if (other_kind, other_id) != (kind, request_id):
                    affected.add((other_kind, other_id))
            await db.delete(response)

        await db.delete(locked)
        await db.flush()

        for other_kind, other_id in sorted(affected):
            await recompute_request_status(db, other_kind, other_id)

    logger.info(
        "%s request %s deleted with %d responses",
        kind.value.capitalize(),
        request_id,
        len(responses),
    )


async def close_request(db: AsyncSession, request: AnyRequest) -> AnyRequest:
    """Close a matched request, its counterpart and the responses between them."""
    if not can_close_request(request):
        raise RequestNotClosableError()

    async with atomic(db):
        locked = await _lock_pair(db, request)
        target = locked[request.kind]
        if not can_close_request(target):
            raise RequestNotClosableError()

        for row in locked.values():
            row.status = RequestStatus.CLOSED

        responses = await store.find_where(
            db,
            or_(*(store.touching(kind, row.id) for kind, row in locked.items())),
            overall_status=RESPONSE_ACTIVE,
        )
        for response in responses:
            response.overall_status = ResponseStatus.CLOSED

    logger.info(
        "%s request %s closed (counterpart %s, %d responses closed)",
        request.kind.value.capitalize(),
        request.id,
        target.matched_counterpart_id,
        len(responses),
    )
    return target
