from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.database import get_db
from postlink.core.deps import get_current_user
from postlink.models.enums import OfferType
from postlink.models.request import AnyRequest
from postlink.models.user import User
from postlink.schemas.request import CreateRequestBody, RequestDeleted, RequestItem, RequestListResponse
from postlink.services.requests import (
    close_request,
    create_request,
    delete_request,
    get_user_request,
    list_active_requests,
)

router = APIRouter(prefix="/requests", tags=["Requests"])


def _request_item(request: AnyRequest) -> RequestItem:
    return RequestItem(
        id=request.id,
        type=request.kind.value,
        from_location_id=request.from_location_id,
        to_location_id=request.to_location_id,
        from_date=request.from_date,
        to_date=request.to_date,
        size_type=request.size_type,
        price=request.price,
        currency=request.currency,
        description=request.description,
        status=request.status.value,
        matched_request_id=request.matched_counterpart_id,
        created_at=request.created_at,
    )


@router.post("/send", response_model=RequestItem, status_code=status.HTTP_201_CREATED, summary="Создать заявку на отправку", description="Создаёт заявку на отправку посылки и сразу ищет подходящих перевозчиков. Не более трёх активных заявок на пользователя.")
async def create_send_request(
    body: CreateRequestBody,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = await create_request(db, user, OfferType.SEND, body.model_dump())
    return _request_item(request)


@router.post("/delivery", response_model=RequestItem, status_code=status.HTTP_201_CREATED, summary="Создать заявку на доставку", description="Создаёт заявку перевозчика на маршрут и сразу ищет подходящие посылки.")
async def create_delivery_request(
    body: CreateRequestBody,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = await create_request(db, user, OfferType.DELIVERY, body.model_dump())
    return _request_item(request)


@router.get("/my", response_model=RequestListResponse, summary="Мои заявки", description="Все незакрытые заявки текущего пользователя, новые первыми.")
async def my_requests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    requests = await list_active_requests(db, user)
    return RequestListResponse(data=[_request_item(r) for r in requests])


@router.delete("/{kind}/{request_id}", response_model=RequestDeleted, summary="Удалить заявку", description="Удаляет заявку вместе с откликами. Сопоставленные и завершённые заявки удалить нельзя.")
async def remove_request(
    kind: OfferType,
    request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = await get_user_request(db, user, kind, request_id)
    await delete_request(db, request)
    return RequestDeleted(id=request_id)


@router.patch("/{kind}/{request_id}/close", response_model=RequestItem, summary="Закрыть заявку", description="Закрывает сопоставленную заявку и заявку-пару.")
async def close_user_request(
    kind: OfferType,
    request_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = await get_user_request(db, user, kind, request_id)
    request = await close_request(db, request)
    return _request_item(request)
