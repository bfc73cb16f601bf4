import html
from typing import Optional

import httpx

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.errors import DeliveryError
from pwa_bridge.services.identity import Identity

logger = get_logger("telegram_service")

NOTE_ACTION = "note"
PANEL_PREFIX = "🛠 Panel"
TOPIC_NAME_MAX_LENGTH = 128


class TelegramService:
    """Outbound relay into the staff forum supergroup."""

    BASE_URL = "https://api.telegram.org/bot{token}"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout = timeout
        self._transport = transport

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Call a Bot API method. Raises DeliveryError unless Telegram answers ok."""
        if not self.bot_token:
            raise DeliveryError("BOT_TOKEN is not configured", operation=method)

        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=data or {})
                result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            raise DeliveryError(f"Telegram {method} failed: {e}", operation=method) from e

        if not result.get("ok"):
            description = result.get("description", "unknown error")
            raise DeliveryError(f"Telegram {method} rejected: {description}", operation=method)
        return result

    async def send_to_thread(self, thread_id: str, text: str, buttons: Optional[dict] = None) -> str:
        """Send a message into a forum topic and return its message id."""
        try:
            topic = int(thread_id)
        except (TypeError, ValueError) as e:
            raise DeliveryError(f"Invalid topic id: {thread_id!r}", operation="sendMessage") from e

        data = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "message_thread_id": topic,
        }
        if buttons:
            data["reply_markup"] = buttons

        result = await self._make_request("sendMessage", data)
        return str(result["result"]["message_id"])

    async def edit_message(self, message_id: str, text: str, buttons: Optional[dict] = None) -> None:
        """Replace the text of an existing message in place."""
        try:
            target = int(message_id)
        except (TypeError, ValueError) as e:
            raise DeliveryError(f"Invalid message id: {message_id!r}", operation="editMessageText") from e

        data = {
            "chat_id": self.chat_id,
            "message_id": target,
            "text": text,
            "parse_mode": "HTML",
        }
        if buttons:
            data["reply_markup"] = buttons

        try:
            await self._make_request("editMessageText", data)
        except DeliveryError as e:
            if "message is not modified" in e.message.lower():
                return
            raise

    async def create_thread(self, title: str) -> str:
        """Create a forum topic in the staff group. Returns its message_thread_id."""
        name = (title or "Client").strip()[:TOPIC_NAME_MAX_LENGTH]
        result = await self._make_request("createForumTopic", {"chat_id": self.chat_id, "name": name})
        return str(result["result"]["message_thread_id"])

    async def answer_interaction(self, interaction_id: str, text: Optional[str] = None) -> bool:
        """Stop the button spinner. Failures are not worth surfacing."""
        data = {"callback_query_id": interaction_id}
        if text:
            data["text"] = text
        try:
            await self._make_request("answerCallbackQuery", data)
            return True
        except DeliveryError as e:
            logger.warning(f"answerCallbackQuery failed: {e}")
            return False


def build_note_buttons(thread_id: str) -> dict:
    """Inline keyboard for the control panel message."""
    return {
        "inline_keyboard": [
            [{"text": "📝 Add note", "callback_data": f"{NOTE_ACTION}_{thread_id}"}],
        ]
    }


def parse_action(callback_data: Optional[str]) -> tuple[str, str]:
    """Split "action_payload" callback data. Unparseable data yields ("", "")."""
    if not callback_data or "_" not in callback_data:
        return "", ""
    action, _, payload = callback_data.partition("_")
    return action, payload


def format_topic_title(identity: Identity) -> str:
    return f"{identity.email} · {identity.seller_slug}"


def format_client_message(identity: Identity, text: str) -> str:
    return f"💬 Client ({html.escape(identity.email)})\n{html.escape(text)}"


def format_panel_message(text: str) -> str:
    """Copy of a seller-panel message mirrored into the staff topic."""
    return f"{PANEL_PREFIX}\n{html.escape(text)}"


def format_control_panel(identity: Identity, annotation: str) -> str:
    """Control panel shown once per new client and edited when notes change."""
    notes = html.escape(annotation) if annotation.strip() else "—"
    return f"""🆕 <b>New client</b>

<b>Email:</b> {html.escape(identity.email)}
<b>Seller:</b> {html.escape(identity.seller_slug)}

📝 <b>Notes:</b>
{notes}"""
