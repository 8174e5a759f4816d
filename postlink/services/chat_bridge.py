import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.models.chat import Chat
from postlink.models.enums import ChatStatus

logger = logging.getLogger(__name__)


async def find_or_create_chat(
    db: AsyncSession,
    user_a: int,
    user_b: int,
    *,
    send_request_id: int | None = None,
    delivery_request_id: int | None = None,
) -> Chat:
    """Return the chat between two users, creating or reactivating it.

    Chats are unique per unordered pair of participants. Runs inside the
    caller's transaction; nothing is committed here.
    """
    result = await db.execute(
        select(Chat)
        .where(
            or_(
                and_(Chat.sender_id == user_a, Chat.receiver_id == user_b),
                and_(Chat.sender_id == user_b, Chat.receiver_id == user_a),
            )
        )
        .order_by(Chat.id)
        .limit(1)
    )
    chat = result.scalar_one_or_none()

    if chat:
        if chat.status != ChatStatus.ACTIVE:
            chat.status = ChatStatus.ACTIVE
            logger.info("Chat %s reactivated for users %s and %s", chat.id, user_a, user_b)
        if send_request_id is not None:
            chat.send_request_id = send_request_id
        if delivery_request_id is not None:
            chat.delivery_request_id = delivery_request_id
        return chat

    chat = Chat(
        sender_id=user_a,
        receiver_id=user_b,
        send_request_id=send_request_id,
        delivery_request_id=delivery_request_id,
        status=ChatStatus.ACTIVE,
    )
    db.add(chat)
    await db.flush()
    logger.info("Chat %s created for users %s and %s", chat.id, user_a, user_b)
    return chat
