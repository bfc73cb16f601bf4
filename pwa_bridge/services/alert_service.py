"""Operational alerts for the bridge, posted to a separate ops chat.

Alerts go through their own bot so a broken staff-group token still
reports itself. Identical alerts are collapsed for ALERT_COOLDOWN_SECONDS.
"""

import html
import time
from typing import Optional

import httpx

from pwa_bridge.config import settings
from pwa_bridge.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_COOLDOWN_SECONDS = 60
LEVEL_ICONS = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

_last_sent: dict[str, float] = {}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{LEVEL_ICONS.get(level, '📢')} <b>{level}</b> · pwa-bridge\n\n{html.escape(message)}"
    if context:
        lines = "\n".join(f"{k}: {v}" for k, v in context.items())
        text += f"\n\n<pre>{html.escape(lines)}</pre>"
    return text


def _in_cooldown(key: str) -> bool:
    now = time.monotonic()
    last = _last_sent.get(key)
    if last is not None and now - last < ALERT_COOLDOWN_SECONDS:
        return True
    _last_sent[key] = now
    return False


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to the ops chat.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False
    if _in_cooldown(f"{level}:{message}"):
        logger.info(f"Alert suppressed (cooldown): {level} - {message}")
        return False

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={
                    "chat_id": settings.alert_chat_id,
                    "text": format_alert(level, message, context),
                    "parse_mode": "HTML",
                },
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("ERROR", message, context)


async def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("WARNING", message, context)
