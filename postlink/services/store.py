"""Queries over the request and response tables shared by the services."""

from datetime import date

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.models.enums import (
    REQUEST_MATCHABLE,
    RESPONSE_ACTIVE,
    OfferType,
    RequestStatus,
    ResponseStatus,
    ResponseType,
)
from postlink.models.request import REQUEST_MODELS, AnyRequest
from postlink.models.response import Response

# ── Requests ────────────────────────────────────


async def get_request(
    db: AsyncSession,
    kind: OfferType,
    request_id: int,
    *,
    for_update: bool = False,
) -> AnyRequest | None:
    model = REQUEST_MODELS[kind]
    stmt = select(model).where(model.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_open_for_route(
    db: AsyncSession,
    kind: OfferType,
    from_location_id: int,
    to_location_id: int,
    *extra_criteria,
) -> list[AnyRequest]:
    model = REQUEST_MODELS[kind]
    result = await db.execute(
        select(model)
        .where(
            model.from_location_id == from_location_id,
            model.to_location_id == to_location_id,
            model.status.in_(REQUEST_MATCHABLE),
            *extra_criteria,
        )
        .order_by(model.id)
    )
    return list(result.scalars().all())


async def count_active_by_user(db: AsyncSession, user_id: int) -> int:
    total = 0
    for model in REQUEST_MODELS.values():
        count = (
            await db.execute(
                select(func.count())
                .select_from(model)
                .where(model.user_id == user_id, model.status != RequestStatus.CLOSED)
            )
        ).scalar() or 0
        total += count
    return total


async def find_active_by_user_and_route(
    db: AsyncSession,
    user_id: int,
    kind: OfferType,
    from_location_id: int,
    to_location_id: int,
    on_date: date,
) -> AnyRequest | None:
    model = REQUEST_MODELS[kind]
    result = await db.execute(
        select(model)
        .where(
            model.user_id == user_id,
            model.from_location_id == from_location_id,
            model.to_location_id == to_location_id,
            model.from_date <= on_date,
            model.to_date >= on_date,
            model.status != RequestStatus.CLOSED,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_user_requests(db: AsyncSession, user_id: int, kind: OfferType) -> list[AnyRequest]:
    model = REQUEST_MODELS[kind]
    result = await db.execute(
        select(model)
        .where(model.user_id == user_id, model.status != RequestStatus.CLOSED)
        .order_by(model.created_at.desc(), model.id.desc())
    )
    return list(result.scalars().all())


# ── Responses ───────────────────────────────────


def touching(kind: OfferType, request_id: int):
    """Responses that refer to request ``request_id`` of ``kind`` on either side."""
    return or_(
        and_(Response.offer_type == kind, Response.offer_id == request_id),
        and_(
            Response.response_type == ResponseType.MATCHING,
            Response.offer_type == kind.opposite,
            Response.request_id == request_id,
        ),
    )


def receiving(kind: OfferType, request_id: int):
    """Responses for which the request is the receiving side."""
    return or_(
        and_(
            Response.response_type == ResponseType.MATCHING,
            Response.offer_type == kind.opposite,
            Response.request_id == request_id,
        ),
        and_(
            Response.response_type == ResponseType.MANUAL,
            Response.offer_type == kind,
            Response.offer_id == request_id,
        ),
    )


async def find_where(db: AsyncSession, *conditions, **criteria) -> list[Response]:
    """Responses filtered by column equality; tuple/list/set values mean IN."""
    stmt = select(Response).where(*conditions)
    for column, value in criteria.items():
        attr = getattr(Response, column)
        if isinstance(value, (tuple, list, set, frozenset)):
            stmt = stmt.where(attr.in_(value))
        else:
            stmt = stmt.where(attr == value)
    result = await db.execute(stmt.order_by(Response.id))
    return list(result.scalars().all())


async def find_matching_response(
    db: AsyncSession,
    send_id: int,
    delivery_id: int,
    statuses: tuple[ResponseStatus, ...] = RESPONSE_ACTIVE,
) -> Response | None:
    result = await db.execute(
        select(Response)
        .where(
            Response.response_type == ResponseType.MATCHING,
            or_(
                and_(
                    Response.offer_type == OfferType.SEND,
                    Response.offer_id == send_id,
                    Response.request_id == delivery_id,
                ),
                and_(
                    Response.offer_type == OfferType.DELIVERY,
                    Response.offer_id == delivery_id,
                    Response.request_id == send_id,
                ),
            ),
            Response.overall_status.in_(statuses),
        )
        .order_by(Response.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_response(db: AsyncSession, response_id: int, *, for_update: bool = False) -> Response | None:
    stmt = select(Response).where(Response.id == response_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
