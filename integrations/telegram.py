"""
Telegram Bot API client for reconciliation alerts.

An alert recipient is a Telegram chat ID. Messages are sent as HTML so
the subject can be bolded; everything else is escaped.
"""

import html
from typing import Optional
import requests
import structlog

from config import settings

logger = structlog.get_logger(__name__)


API_BASE = "https://api.telegram.org"

# Hard limit of the sendMessage endpoint
MAX_MESSAGE_LENGTH = 4096


class TelegramError(Exception):
    """Telegram rejected the request or could not be reached."""
    pass


def format_alert(subject: str, body: str) -> str:
    """Bold subject, blank line, escaped body; cut to the API limit."""
    message = f"<b>{html.escape(subject)}</b>\n\n{html.escape(body.strip())}"
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 1] + "…"
    return message


def send_message(
    message: str,
    chat_id: Optional[str] = None,
    parse_mode: str = "HTML",
) -> bool:
    """
    Post a message through the bot.

    Args:
        message: Text, already formatted for parse_mode
        chat_id: Target chat (defaults to TELEGRAM_CHAT_ID)
        parse_mode: HTML or Markdown

    Returns:
        True once Telegram accepted it, False if no bot or chat is configured

    Raises:
        TelegramError: On a transport failure or an API error reply
    """
    token = settings.telegram_bot_token
    chat_id = chat_id or settings.telegram_chat_id

    if not token or not chat_id:
        logger.warning("telegram_not_configured", has_token=bool(token), has_chat_id=bool(chat_id))
        return False

    try:
        response = requests.post(
            f"{API_BASE}/bot{token}/sendMessage",
            json={
                "chat_id": chat_id,
                "text": message,
                "parse_mode": parse_mode,
                "disable_web_page_preview": True,
            },
            timeout=10,
        )
        response.raise_for_status()
        result = response.json()
    except requests.exceptions.RequestException as e:
        logger.error("telegram_request_failed", chat_id=chat_id, error=str(e))
        raise TelegramError(f"Failed to send Telegram message: {e}")

    if not result.get("ok"):
        description = result.get("description", "Unknown error")
        logger.error("telegram_api_error", chat_id=chat_id, error=description)
        raise TelegramError(f"Telegram API error: {description}")

    logger.info(
        "telegram_message_sent",
        chat_id=chat_id,
        message_id=result.get("result", {}).get("message_id"),
    )
    return True


def send_alert(recipient: str, subject: str, body: str) -> bool:
    """
    Send a subject + body alert to one chat.

    Raises:
        TelegramError: If Telegram refuses or is unreachable
    """
    return send_message(format_alert(subject, body), chat_id=recipient)
