"""Best-effort user notifications.

Every notification is stored as an in-app inbox row and pushed to Telegram
when the user has a linked account. Callers invoke ``notify`` after their own
transaction has committed; a failure here is logged and never propagated.
"""

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postlink.models.notification import Notification
from postlink.models.user import User
from postlink.services.telegram import send_telegram_message

logger = logging.getLogger(__name__)

NEW_RESPONSE = "new_response"
RESPONSE_ACCEPTED = "response_accepted"
RESPONSE_REJECTED = "response_rejected"

TITLES = {
    NEW_RESPONSE: "У вас новый отклик!",
    RESPONSE_ACCEPTED: "Отклик принят",
    RESPONSE_REJECTED: "Отклик отклонён",
}

TEXTS = {
    NEW_RESPONSE: (
        "🎉 *У вас новый отклик!*\n"
        "Ваша заявка получила отклик. Откройте раздел _входящие_ в приложении, "
        "чтобы посмотреть детали и решить — принять или отклонить👇🏻"
    ),
    RESPONSE_ACCEPTED: (
        "✅ *Отклик принят*\n"
        " Отлично! Теперь вы можете обсудить детали доставки напрямую в чате.💬 "
        "Перейдите в раздел _входящие_ в приложении, чтобы начать👇🏻"
    ),
    RESPONSE_REJECTED: (
        "❌ *Отклик отклонён*\n"
        " Мы продолжим искать совпадения для вас и уведомим о _новом отклике_⏳"
    ),
}


async def notify(
    db: AsyncSession,
    user_id: int,
    text: str | None = None,
    kind: str = NEW_RESPONSE,
    *,
    reference_id: int | None = None,
) -> bool:
    """Record and push a notification. Returns True if the push was delivered.

    Uses its own session on the caller's engine so a failure here never
    touches the caller's objects or transaction.
    """
    body = text or TEXTS[kind]
    async with AsyncSession(db.bind, expire_on_commit=False) as session:
        try:
            user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Notification %s for user %s skipped: user lookup failed", kind, user_id)
            return False
        if user is None:
            logger.warning("Notification %s skipped: user %s not found", kind, user_id)
            return False

        delivered = False
        if user.telegram_id:
            try:
                delivered = await send_telegram_message(user.telegram_id, body)
            except Exception:
                logger.exception("Telegram push to user %s failed (%s)", user_id, kind)
        else:
            logger.info("User %s has no telegram_id, notification %s kept in-app only", user_id, kind)

        session.add(
            Notification(
                user_id=user_id,
                type=kind,
                title=TITLES.get(kind, kind),
                body=body,
                is_delivered=delivered,
                reference_type="response" if reference_id is not None else None,
                reference_id=reference_id,
            )
        )
        try:
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Failed to store notification %s for user %s", kind, user_id)
        return delivered


async def notify_all(db: AsyncSession, pending: Iterable[tuple[int, str, int]]) -> None:
    """Send queued (user_id, kind, reference_id) notifications one by one."""
    for user_id, kind, reference_id in pending:
        await notify(db, user_id, kind=kind, reference_id=reference_id)
