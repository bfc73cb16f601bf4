from pwa_bridge.schemas.client import ClientMessageRequest, HistoryResponse, IdentityRequest, RegisterClientResponse
from pwa_bridge.schemas.telegram import TelegramUpdate, TelegramWebhookResponse

__all__ = [
    "ClientMessageRequest",
    "HistoryResponse",
    "IdentityRequest",
    "RegisterClientResponse",
    "TelegramUpdate",
    "TelegramWebhookResponse",
]
