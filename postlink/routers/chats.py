from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.core.database import get_db
from postlink.core.deps import get_current_user
from postlink.models.chat import Chat
from postlink.models.user import User
from postlink.schemas.chat import ChatListItem, ChatListResponse
from postlink.schemas.response import UserBrief

router = APIRouter(prefix="/chats", tags=["Chats"])


@router.get("", response_model=ChatListResponse, summary="Список чатов", description="Чаты текущего пользователя, созданные после взаимного принятия отклика.")
async def list_chats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Chat)
        .where(or_(Chat.sender_id == user.id, Chat.receiver_id == user.id))
        .order_by(Chat.created_at.desc(), Chat.id.desc())
    )
    chats = result.scalars().all()

    other_ids = {chat.other_participant(user.id) for chat in chats}
    users = {}
    if other_ids:
        users_result = await db.execute(select(User).where(User.id.in_(other_ids)))
        users = {u.id: u for u in users_result.scalars().all()}

    data = []
    for chat in chats:
        other_id = chat.other_participant(user.id)
        other = users.get(other_id)
        data.append(
            ChatListItem(
                id=chat.id,
                participant=UserBrief(
                    id=other_id,
                    name=other.name if other else None,
                    username=other.username if other else None,
                ),
                send_request_id=chat.send_request_id,
                delivery_request_id=chat.delivery_request_id,
                status=chat.status.value,
                created_at=chat.created_at,
            )
        )

    return ChatListResponse(data=data)
