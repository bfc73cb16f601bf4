import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from pwa_bridge.dependencies import Bridge, get_bridge
from pwa_bridge.logging_config import get_logger
from pwa_bridge.schemas.telegram import TelegramMessage, TelegramUpdate, TelegramWebhookResponse
from pwa_bridge.services.alert_service import alert_error, alert_warning
from pwa_bridge.services.event_router import RouteOutcome

logger = get_logger("telegram_webhook")

router = APIRouter()


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


def is_staff_topic_message(message: TelegramMessage, staff_group_id: str) -> bool:
    """Only messages posted inside a topic of the staff supergroup are routed."""
    if message.chat.type != "supergroup" or not message.message_thread_id:
        return False
    if staff_group_id and str(message.chat.id) != str(staff_group_id).strip():
        return False
    return True


def _response(outcome: RouteOutcome) -> TelegramWebhookResponse:
    return TelegramWebhookResponse(success=outcome.ok, message=outcome.error, action=outcome.action)


@router.post("/webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    bridge: Bridge = Depends(get_bridge),
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Handle Telegram webhook updates (always answered with 200):
    - Topic messages from staff -> note capture or relay to the client room
    - Callback queries (button clicks) -> "add note" arming
    """
    expected_secret = bridge.settings.telegram_webhook_secret
    if expected_secret and secret_token != expected_secret:
        logger.warning("Telegram webhook with invalid secret token")
        await alert_warning("Telegram webhook called with an invalid secret token")
        return TelegramWebhookResponse(success=False, message="Invalid secret token")

    try:
        body = await parse_telegram_update(request)
        if body is None:
            return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

        logger.debug(f"Telegram webhook received: {body}")
        update = TelegramUpdate(**body)

        if bridge.updates.seen_before(update.update_id):
            logger.info(f"Duplicate update {update.update_id} ignored")
            return TelegramWebhookResponse(success=True, message="Duplicate update", action="ignored_duplicate")

        if update.callback_query:
            return await handle_callback_query(update, bridge)

        if update.message:
            return await handle_staff_message(update.message, bridge)

        return TelegramWebhookResponse(success=True, message="No actionable content")

    except Exception as e:
        logger.error(f"Telegram webhook error: {e}", exc_info=True)
        await alert_error("Telegram webhook failed", {"error": str(e)})
        return TelegramWebhookResponse(success=False, message=str(e))


async def handle_staff_message(message: TelegramMessage, bridge: Bridge) -> TelegramWebhookResponse:
    if not is_staff_topic_message(message, bridge.settings.staff_group_id):
        return TelegramWebhookResponse(success=True, message="Not a staff topic message", action="ignored")

    logger.info(
        f"Staff message received: topic={message.message_thread_id}, "
        f"from={message.from_user.id if message.from_user else 'unknown'}, "
        f"text={message.text[:50] if message.text else 'none'}"
    )
    outcome = await bridge.router.on_staff_message(
        thread_id=str(message.message_thread_id),
        sender_is_bot=message.sender_is_bot,
        text=message.text,
    )
    return _response(outcome)


async def handle_callback_query(update: TelegramUpdate, bridge: Bridge) -> TelegramWebhookResponse:
    """Handle callback query (button click): "note_<topic_id>"."""
    callback = update.callback_query

    thread_id = None
    if callback.message and callback.message.message_thread_id:
        thread_id = str(callback.message.message_thread_id)

    logger.info(f"Callback: data={callback.data}, topic={thread_id}, from={callback.from_user.id}")
    outcome = await bridge.router.on_staff_interaction(
        thread_id=thread_id,
        interaction_id=callback.id,
        action_tag=callback.data,
    )
    return _response(outcome)
