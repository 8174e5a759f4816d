import logging

import httpx

from postlink.core.config import settings

logger = logging.getLogger(__name__)


def _web_app_keyboard() -> dict | None:
    if not settings.FRONTEND_APP_URL:
        return None
    return {
        "inline_keyboard": [
            [{"text": "Открыть PostLink", "web_app": {"url": settings.FRONTEND_APP_URL}}],
        ]
    }


async def send_telegram_message(chat_id: int, text: str) -> bool:
    """Push a Markdown message through the Telegram Bot API. Never raises."""
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.debug("Telegram bot token not configured, skipping push to %s", chat_id)
        return False

    payload = {"chat_id": chat_id, "text": text, "parse_mode": "Markdown"}
    keyboard = _web_app_keyboard()
    if keyboard:
        payload["reply_markup"] = keyboard

    url = f"{settings.TELEGRAM_API_URL}/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
    attempts = max(settings.NOTIFICATION_RETRIES, 0) + 1

    for attempt in range(1, attempts + 1):
        try:
            async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT_SECONDS) as client:
                resp = await client.post(url, json=payload)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Telegram push to %s failed (attempt %d/%d): %s", chat_id, attempt, attempts, e)
            continue

        if resp.status_code == 200 and data.get("ok"):
            return True
        # API-level errors (blocked bot, bad chat id) are not retried
        logger.error("Telegram rejected push to %s: %s", chat_id, data.get("description", "Unknown error"))
        return False

    return False
