from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.database import get_db
from postlink.core.deps import get_current_user
from postlink.models.enums import ResponseType
from postlink.models.response import Response
from postlink.models.user import User
from postlink.schemas.response import (
    CreateManualResponseRequest,
    ResponseActionResult,
    ResponseCancelled,
    ResponseItem,
    ResponseListResponse,
    UserBrief,
)
from postlink.services.parties import parties_of, user_role
from postlink.services.response_ref import ResponseKey
from postlink.services.responses import (
    ResponseAction,
    apply_action,
    cancel_response,
    create_manual_response,
    list_user_responses,
)

router = APIRouter(prefix="/responses", tags=["Responses"])


def _response_key(response: Response) -> str | None:
    if response.response_type != ResponseType.MATCHING:
        return None
    return ResponseKey(
        offer_type=response.offer_type,
        offer_id=response.offer_id,
        request_type=response.request_type,
        request_id=response.request_id,
    ).format()


def _response_item(response: Response, user_id: int, counterpart: User | None = None) -> ResponseItem:
    role = user_role(response, user_id)
    return ResponseItem(
        id=response.id,
        key=_response_key(response),
        response_type=response.response_type.value,
        offer_type=response.offer_type.value,
        offer_id=response.offer_id,
        request_id=response.request_id,
        role=role.value if role else None,
        deliverer_status=response.deliverer_status.value,
        sender_status=response.sender_status.value,
        overall_status=response.overall_status.value,
        chat_id=response.chat_id,
        message=response.message,
        amount=response.amount,
        currency=response.currency,
        counterpart=UserBrief(id=counterpart.id, name=counterpart.name, username=counterpart.username) if counterpart else None,
        created_at=response.created_at,
    )


def _action_result(response: Response) -> ResponseActionResult:
    return ResponseActionResult(
        id=response.id,
        overall_status=response.overall_status.value,
        deliverer_status=response.deliverer_status.value,
        sender_status=response.sender_status.value,
        chat_id=response.chat_id,
    )


@router.get("", response_model=ResponseListResponse, summary="Входящие отклики", description="Отклики, видимые текущему пользователю: ожидающие, частично и полностью принятые.")
async def my_responses(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    responses = await list_user_responses(db, user)

    other_ids = {parties_of(r).other(user.id) for r in responses}
    users = {}
    if other_ids:
        result = await db.execute(select(User).where(User.id.in_(other_ids)))
        users = {u.id: u for u in result.scalars().all()}

    return ResponseListResponse(
        data=[_response_item(r, user.id, users.get(parties_of(r).other(user.id))) for r in responses]
    )


@router.post("/manual", response_model=ResponseItem, status_code=status.HTTP_201_CREATED, summary="Откликнуться на заявку", description="Ручной отклик на чужую заявку. Повторный отклик после отказа переиспользует прежний.")
async def create_manual(
    body: CreateManualResponseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    response = await create_manual_response(
        db,
        user,
        body.offer_type,
        body.request_id,
        body.message,
        amount=body.amount,
        currency=body.currency,
    )
    return _response_item(response, user.id)


@router.post("/{response_ref}/accept", response_model=ResponseActionResult, summary="Принять отклик", description="Принимает отклик от имени текущего пользователя. Когда приняли обе стороны, создаётся чат, а заявки сопоставляются. `response_ref`: числовой id или составной `send_1_delivery_2`.")
async def accept_response(
    response_ref: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    response = await apply_action(db, response_ref, user, ResponseAction.ACCEPT)
    return _action_result(response)


@router.post("/{response_ref}/reject", response_model=ResponseActionResult, summary="Отклонить отклик", description="Отклоняет отклик от имени текущего пользователя.")
async def reject_response(
    response_ref: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    response = await apply_action(db, response_ref, user, ResponseAction.REJECT)
    return _action_result(response)


@router.post("/{response_ref}/cancel", response_model=ResponseCancelled, summary="Отозвать отклик", description="Удаляет ожидающий или частично принятый отклик. Повторная отмена ничего не делает.")
async def cancel(
    response_ref: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    cancelled = await cancel_response(db, response_ref, user)
    return ResponseCancelled(cancelled=cancelled)
