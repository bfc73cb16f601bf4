from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from pwa_bridge.config import Settings, settings
from pwa_bridge.services.airtable_service import AirtableClient
from pwa_bridge.services.dedup_service import RecentIds
from pwa_bridge.services.directory_service import ConversationDirectory
from pwa_bridge.services.errors import BridgeError, LookupMiss, ValidationError
from pwa_bridge.services.escrow_service import EscrowStore
from pwa_bridge.services.event_router import EventRouter
from pwa_bridge.services.media_service import MediaStorage
from pwa_bridge.services.note_capture import PendingNoteCaptures
from pwa_bridge.services.session_registry import SessionRegistry
from pwa_bridge.services.telegram_service import TelegramService
from pwa_bridge.services.transcript_service import TranscriptStore


@dataclass
class Bridge:
    """Process-wide services shared by the HTTP routes and the live socket."""

    router: EventRouter
    media: MediaStorage
    updates: RecentIds
    settings: Settings


def build_bridge(current: Settings) -> Bridge:
    store = AirtableClient(current.airtable_api_key, current.airtable_base_id, timeout=current.http_timeout_seconds)
    router = EventRouter(
        directory=ConversationDirectory(store, current.airtable_table_pwa),
        transcript=TranscriptStore(store, current.airtable_table_pwa_messages),
        relay=TelegramService(current.bot_token, current.staff_group_id, timeout=current.http_timeout_seconds),
        sessions=SessionRegistry(),
        notes=PendingNoteCaptures(ttl_seconds=current.note_capture_ttl_seconds),
        escrow=EscrowStore(),
        command_prefixes=current.command_prefixes,
    )
    media = MediaStorage(
        current.cloudinary_cloud_name,
        current.cloudinary_api_key,
        current.cloudinary_api_secret,
        folder=current.cloudinary_folder,
    )
    return Bridge(router=router, media=media, updates=RecentIds(), settings=current)


_bridge: Optional[Bridge] = None


def get_bridge() -> Bridge:
    global _bridge
    if _bridge is None:
        _bridge = build_bridge(settings)
    return _bridge


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    bridge: Bridge = Depends(get_bridge),
) -> None:
    expected = bridge.settings.admin_token
    if not expected:
        return
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


def to_http_error(error: BridgeError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, LookupMiss):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
