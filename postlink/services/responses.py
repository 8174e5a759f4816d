"""
Response lifecycle: creation, per-actor accept/reject, cancellation, inbox.

Mutating operations run as one unit of work through ``atomic``. Notifications
go out only after the commit and never affect the outcome of the operation.
"""

import enum
import logging

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.database import atomic
from postlink.core.exceptions import (
    AlreadyMatchedError,
    ConflictError,
    InsufficientBalanceError,
    OwnRequestError,
    RequestNotAcceptingResponsesError,
    RequestNotFoundError,
    ResponseAlreadyExistsError,
    ResponseAlreadyProcessedError,
    ResponseNotFoundError,
    RoleMismatchError,
)
from postlink.models.enums import (
    REQUEST_MATCHABLE,
    RESPONSE_ACTIONABLE,
    RESPONSE_ACTIVE,
    DualStatus,
    OfferType,
    RequestStatus,
    ResponseStatus,
    ResponseType,
)
from postlink.models.request import AnyRequest
from postlink.models.response import Response
from postlink.models.user import User
from postlink.services import store
from postlink.services.chat_bridge import find_or_create_chat
from postlink.services.notifications import NEW_RESPONSE, RESPONSE_ACCEPTED, RESPONSE_REJECTED, notify
from postlink.services.parties import (
    Role,
    aggregate_status,
    parties_of,
    role_status,
    set_role_status,
    touched_requests,
    user_role,
)
from postlink.services.response_ref import ResponseKey, parse_response_ref

logger = logging.getLogger(__name__)


class ResponseAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"


# ── Request status ──────────────────────────────


async def recompute_request_status(db: AsyncSession, kind: OfferType, request_id: int) -> RequestStatus | None:
    """Flip a request between open and has_responses from its live responses.

    A request has responses while some pending/partial response is addressed
    to it, or while a partial matching response offers it. Requests in any
    other state are left alone.
    """
    request = await store.get_request(db, kind, request_id, for_update=True)
    if request is None:
        return None
    if request.status not in REQUEST_MATCHABLE:
        return request.status

    receiving = (
        await db.execute(
            select(func.count())
            .select_from(Response)
            .where(store.receiving(kind, request_id), Response.overall_status.in_(RESPONSE_ACTIONABLE))
        )
    ).scalar() or 0
    offered_partial = (
        await db.execute(
            select(func.count())
            .select_from(Response)
            .where(
                Response.response_type == ResponseType.MATCHING,
                Response.offer_type == kind,
                Response.offer_id == request_id,
                Response.overall_status == ResponseStatus.PARTIAL,
            )
        )
    ).scalar() or 0

    request.status = RequestStatus.HAS_RESPONSES if receiving or offered_partial else RequestStatus.OPEN
    return request.status


# ── Creation ────────────────────────────────────


async def create_matching_response(
    db: AsyncSession,
    receiving_user_id: int,
    offering_user_id: int,
    offer_type: OfferType,
    request_id: int,
    offer_id: int,
) -> Response:
    """Insert a matching response unless an active one already exists.

    Runs inside the caller's unit of work. Only the receiving request advances;
    the offering request stays as it is until its owner accepts.
    """
    existing = await store.find_where(
        db,
        user_id=receiving_user_id,
        responder_id=offering_user_id,
        response_type=ResponseType.MATCHING,
        offer_type=offer_type,
        request_id=request_id,
        offer_id=offer_id,
        overall_status=RESPONSE_ACTIVE,
    )
    if existing:
        return existing[0]

    response = Response(
        user_id=receiving_user_id,
        responder_id=offering_user_id,
        response_type=ResponseType.MATCHING,
        offer_type=offer_type,
        offer_id=offer_id,
        request_id=request_id,
        deliverer_status=DualStatus.PENDING,
        sender_status=DualStatus.PENDING,
        overall_status=ResponseStatus.PENDING,
    )
    db.add(response)
    await db.flush()

    await recompute_request_status(db, offer_type.opposite, request_id)
    logger.info(
        "Matching response %s created: %s %s offered to request %s of user %s",
        response.id,
        offer_type.value,
        offer_id,
        request_id,
        receiving_user_id,
    )
    return response


async def create_manual_response(
    db: AsyncSession,
    responder: User,
    offer_type: OfferType,
    target_request_id: int,
    message: str | None,
    amount: int | None = None,
    currency: str | None = None,
) -> Response:
    """Respond to someone else's request directly. Reuses a rejected attempt."""
    async with atomic(db):
        target = await store.get_request(db, offer_type, target_request_id)
        if target is None:
            raise RequestNotFoundError()
        if target.user_id == responder.id:
            raise OwnRequestError()
        if target.status not in REQUEST_MATCHABLE:
            raise RequestNotAcceptingResponsesError()

        between_users = or_(
            and_(Response.user_id == target.user_id, Response.responder_id == responder.id),
            and_(Response.user_id == responder.id, Response.responder_id == target.user_id),
        )
        active = await store.find_where(
            db,
            between_users,
            response_type=ResponseType.MANUAL,
            offer_type=offer_type,
            offer_id=target.id,
            overall_status=RESPONSE_ACTIVE,
        )
        if active:
            raise ResponseAlreadyExistsError()

        rejected = await store.find_where(
            db,
            user_id=target.user_id,
            responder_id=responder.id,
            response_type=ResponseType.MANUAL,
            offer_type=offer_type,
            offer_id=target.id,
            overall_status=ResponseStatus.REJECTED,
        )
        if rejected:
            response = rejected[0]
            response.deliverer_status = DualStatus.PENDING
            response.sender_status = DualStatus.PENDING
            response.overall_status = ResponseStatus.PENDING
            response.chat_id = None
        else:
            response = Response(
                user_id=target.user_id,
                responder_id=responder.id,
                response_type=ResponseType.MANUAL,
                offer_type=offer_type,
                offer_id=target.id,
                request_id=0,
                deliverer_status=DualStatus.PENDING,
                sender_status=DualStatus.PENDING,
                overall_status=ResponseStatus.PENDING,
            )
            db.add(response)
        response.message = message
        response.amount = amount
        response.currency = currency
        await db.flush()

        await recompute_request_status(db, offer_type, target.id)

    logger.info(
        "Manual response %s from user %s to %s request %s%s",
        response.id,
        responder.id,
        offer_type.value,
        target.id,
        " (reused)" if rejected else "",
    )
    await notify(db, target.user_id, kind=NEW_RESPONSE, reference_id=response.id)
    return response


# ── Lookup ──────────────────────────────────────


async def resolve_response(db: AsyncSession, response_ref: int | str | ResponseKey) -> Response | None:
    if isinstance(response_ref, str):
        response_ref = parse_response_ref(response_ref)
    if isinstance(response_ref, ResponseKey):
        return await store.find_matching_response(
            db, response_ref.send_id, response_ref.delivery_id, statuses=tuple(ResponseStatus)
        )
    return await store.get_response(db, response_ref)


def _acting_role(response: Response, user: User) -> Role:
    if response.overall_status not in RESPONSE_ACTIONABLE:
        raise ResponseAlreadyProcessedError()
    if response.response_type == ResponseType.MANUAL and user.id != response.user_id:
        raise RoleMismatchError()
    role = user_role(response, user.id)
    if role is None:
        raise RoleMismatchError()
    if role_status(response, role) != DualStatus.PENDING:
        raise ResponseAlreadyProcessedError()
    return role


async def _lock_response(
    db: AsyncSession, response: Response
) -> tuple[Response | None, dict[OfferType, AnyRequest]]:
    """Lock the touched requests and the response row, reloading all of them.

    Returns None for the response if it was deleted meanwhile. Raises
    ConflictError if it is no longer pending or partial.
    """
    # Lock order: send, then delivery, then the response.
    touched = touched_requests(response)
    locked: dict[OfferType, AnyRequest] = {}
    for kind in (OfferType.SEND, OfferType.DELIVERY):
        if kind not in touched:
            continue
        request = await store.get_request(db, kind, touched[kind], for_update=True)
        if request is None:
            raise RequestNotFoundError()
        locked[kind] = request

    fresh = await store.get_response(db, response.id, for_update=True)
    if fresh is not None and fresh.overall_status not in RESPONSE_ACTIONABLE:
        raise ConflictError()
    return fresh, locked


async def _finalize_acceptance(
    db: AsyncSession,
    response: Response,
    locked: dict[OfferType, AnyRequest],
) -> list[Response]:
    parties = parties_of(response)
    send = locked.get(OfferType.SEND)
    delivery = locked.get(OfferType.DELIVERY)

    chat = await find_or_create_chat(
        db,
        parties.sender_id,
        parties.deliverer_id,
        send_request_id=send.id if send else None,
        delivery_request_id=delivery.id if delivery else None,
    )
    response.chat_id = chat.id

    if response.response_type == ResponseType.MATCHING:
        send.status = RequestStatus.MATCHED
        delivery.status = RequestStatus.MATCHED
        send.matched_delivery_id = delivery.id
        delivery.matched_send_id = send.id
    else:
        locked[response.offer_type].status = RequestStatus.MATCHED_MANUALLY

    ours = touched_requests(response)
    competing = await store.find_where(
        db,
        or_(*(store.touching(kind, request_id) for kind, request_id in ours.items())),
        Response.id != response.id,
        overall_status=RESPONSE_ACTIONABLE,
    )
    for other in competing:
        other.deliverer_status = DualStatus.REJECTED
        other.sender_status = DualStatus.REJECTED
        other.overall_status = ResponseStatus.REJECTED
    await db.flush()

    for other in competing:
        for kind, request_id in touched_requests(other).items():
            if ours.get(kind) != request_id:
                await recompute_request_status(db, kind, request_id)

    sender = (
        await db.execute(select(User).where(User.id == parties.sender_id).with_for_update())
    ).scalar_one_or_none()
    if sender is not None:
        sender.links_balance = max(sender.links_balance - 1, 0)

    return competing


async def apply_action(
    db: AsyncSession,
    response_ref: int | str | ResponseKey,
    acting_user: User,
    action: ResponseAction,
) -> Response:
    """Record one party's accept or reject and run whatever it triggers."""
    action = ResponseAction(action)
    competing: list[Response] = []

    async with atomic(db):
        response = await resolve_response(db, response_ref)
        if response is None:
            raise ResponseNotFoundError()
        role = _acting_role(response, acting_user)
        if action == ResponseAction.ACCEPT and acting_user.links_balance <= 0:
            raise InsufficientBalanceError()

        response, locked = await _lock_response(db, response)
        if response is None:
            raise ConflictError()
        role = _acting_role(response, acting_user)

        if action == ResponseAction.ACCEPT:
            if any(request.status not in REQUEST_MATCHABLE for request in locked.values()):
                raise AlreadyMatchedError()

            if response.response_type == ResponseType.MANUAL:
                response.deliverer_status = DualStatus.ACCEPTED
                response.sender_status = DualStatus.ACCEPTED
            else:
                set_role_status(response, role, DualStatus.ACCEPTED)
            response.overall_status = aggregate_status(response.deliverer_status, response.sender_status)

            if response.overall_status == ResponseStatus.ACCEPTED:
                competing = await _finalize_acceptance(db, response, locked)
            else:
                await db.flush()
                for kind, request_id in touched_requests(response).items():
                    await recompute_request_status(db, kind, request_id)
        else:
            set_role_status(response, role, DualStatus.REJECTED)
            response.overall_status = aggregate_status(response.deliverer_status, response.sender_status)
            await db.flush()
            for kind, request_id in touched_requests(response).items():
                await recompute_request_status(db, kind, request_id)

    logger.info(
        "Response %s: user %s (%s) %s, overall status %s",
        response.id,
        acting_user.id,
        role.value,
        action.value,
        response.overall_status.value,
    )
    if competing:
        logger.info(
            "Response %s accepted, %d competing responses rejected: %s",
            response.id,
            len(competing),
            [other.id for other in competing],
        )

    other_user = parties_of(response).other(acting_user.id)
    if response.overall_status == ResponseStatus.ACCEPTED:
        await notify(db, other_user, kind=RESPONSE_ACCEPTED, reference_id=response.id)
    elif response.overall_status == ResponseStatus.REJECTED:
        await notify(db, other_user, kind=RESPONSE_REJECTED, reference_id=response.id)
    else:
        await notify(db, other_user, kind=NEW_RESPONSE, reference_id=response.id)
    return response


async def cancel_response(
    db: AsyncSession,
    response_ref: int | str | ResponseKey,
    acting_user: User,
) -> bool:
    """Withdraw a pending or partial response. Returns False if it was already gone."""
    async with atomic(db):
        response = await resolve_response(db, response_ref)
        if response is None:
            logger.info("Cancel of missing response %s by user %s ignored", response_ref, acting_user.id)
            return False

        if response.response_type == ResponseType.MANUAL:
            if acting_user.id != response.responder_id:
                raise RoleMismatchError()
        elif user_role(response, acting_user.id) is None:
            raise RoleMismatchError()
        if response.overall_status not in RESPONSE_ACTIONABLE:
            raise ResponseAlreadyProcessedError()

        response, _ = await _lock_response(db, response)
        if response is None:
            logger.info("Response %s was removed before user %s could cancel it", response_ref, acting_user.id)
            return False

        response_id = response.id
        touched = touched_requests(response)
        await db.delete(response)
        await db.flush()
        for kind, request_id in touched.items():
            await recompute_request_status(db, kind, request_id)

    logger.info("Response %s cancelled by user %s", response_id, acting_user.id)
    return True


# ── Inbox ───────────────────────────────────────


def is_visible(response: Response, user_id: int, competing_partial: bool = False) -> bool:
    """Whether ``user_id`` sees the response in the inbox.

    ``competing_partial`` tells whether another deliverer already holds a
    partial response for the same send request.
    """
    if response.response_type == ResponseType.MANUAL:
        return True

    role = user_role(response, user_id)
    if role is None:
        return False
    if response.overall_status in (ResponseStatus.ACCEPTED, ResponseStatus.PARTIAL):
        return True
    if response.overall_status == ResponseStatus.PENDING:
        return role == Role.DELIVERER and not competing_partial
    return False


async def list_user_responses(db: AsyncSession, user: User) -> list[Response]:
    result = await db.execute(
        select(Response)
        .where(
            or_(Response.user_id == user.id, Response.responder_id == user.id),
            Response.overall_status.in_(RESPONSE_ACTIVE),
        )
        .order_by(Response.created_at.desc(), Response.id.desc())
    )
    responses = list(result.scalars().all())

    send_offers = {
        r.offer_id
        for r in responses
        if r.response_type == ResponseType.MATCHING
        and r.offer_type == OfferType.SEND
        and r.overall_status == ResponseStatus.PENDING
    }
    partial_holders: dict[int, set[int]] = {}
    if send_offers:
        partials = await store.find_where(
            db,
            response_type=ResponseType.MATCHING,
            offer_type=OfferType.SEND,
            offer_id=tuple(send_offers),
            overall_status=ResponseStatus.PARTIAL,
        )
        for partial in partials:
            partial_holders.setdefault(partial.offer_id, set()).add(partial.user_id)

    visible = []
    for response in responses:
        holders = partial_holders.get(response.offer_id, set()) if response.offer_type == OfferType.SEND else set()
        competing = bool(holders - {response.user_id})
        if is_visible(response, user.id, competing):
            visible.append(response)
    return visible
