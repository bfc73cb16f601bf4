from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from pwa_bridge.dependencies import Bridge, get_bridge, to_http_error
from pwa_bridge.logging_config import get_logger
from pwa_bridge.schemas.client import (
    ClientMessageRequest,
    ClientMessageResponse,
    HistoryItem,
    HistoryResponse,
    IdentityRequest,
    MediaUploadResponse,
    RegisterClientResponse,
    TopicResponse,
)
from pwa_bridge.services.errors import BridgeError, LookupMiss
from pwa_bridge.services.identity import require_identity

logger = get_logger("client_router")

router = APIRouter()


@router.post("/register-client", response_model=RegisterClientResponse)
async def register_client(request: IdentityRequest, bridge: Bridge = Depends(get_bridge)):
    """Return the staff topic for a client, creating record and topic if needed."""
    try:
        identity = require_identity(request.email, request.seller_slug)
        record, outcome = await bridge.router.register_client(identity)
    except BridgeError as e:
        logger.error(f"register-client failed: {e}", extra={"context": {"email": request.email}})
        raise to_http_error(e)

    return RegisterClientResponse(
        success=True,
        topic_id=record.thread_id,
        is_new="thread_created" in outcome.effects,
    )


@router.get("/get-topic", response_model=TopicResponse)
async def get_topic(
    email: Optional[str] = None,
    seller_slug: Optional[str] = Query(default=None, alias="sellerSlug"),
    bridge: Bridge = Depends(get_bridge),
):
    try:
        identity = require_identity(email, seller_slug)
        record = await bridge.router.directory.find_by_identity(identity)
        if record is None or not record.thread_id:
            raise LookupMiss(f"No topic for {identity.email} / {identity.seller_slug}")
    except BridgeError as e:
        raise to_http_error(e)

    return TopicResponse(success=True, topic_id=record.thread_id)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    email: Optional[str] = None,
    seller_slug: Optional[str] = Query(default=None, alias="sellerSlug"),
    topic_id: Optional[str] = Query(default=None, alias="topicId"),
    limit: Optional[int] = Query(default=None, ge=1),
    bridge: Bridge = Depends(get_bridge),
):
    """Most recent messages for a client, oldest first."""
    current = bridge.settings
    bounded = min(limit or current.history_limit, current.history_max_limit)
    try:
        identity = require_identity(email, seller_slug)
        entries = await bridge.router.transcript.recent_for(identity, thread_id=topic_id, limit=bounded)
    except BridgeError as e:
        raise to_http_error(e)

    return HistoryResponse(
        success=True,
        messages=[
            HistoryItem(sender=entry.sender.value, text=entry.text, created_at=entry.created_at, topic_id=entry.thread_id)
            for entry in entries
        ],
    )


@router.post("/client/message", response_model=ClientMessageResponse)
async def post_client_message(request: ClientMessageRequest, bridge: Bridge = Depends(get_bridge)):
    """Same flow as the live `client_message` event, for clients without a socket."""
    try:
        identity = require_identity(request.email, request.seller_slug)
    except BridgeError as e:
        raise to_http_error(e)

    if not (request.text or "").strip():
        raise HTTPException(status_code=400, detail="text is required")

    outcome = await bridge.router.relay_client_message(identity, request.text)
    if not outcome.ok:
        raise HTTPException(status_code=502, detail=outcome.error)
    return ClientMessageResponse(success=True, action=outcome.action, effects=outcome.effects)


@router.post("/upload-media", response_model=MediaUploadResponse)
async def upload_media(file: Optional[UploadFile] = File(default=None), bridge: Bridge = Depends(get_bridge)):
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await file.read()
    try:
        url = await bridge.media.store(content, file.filename, file.content_type)
    except BridgeError as e:
        raise to_http_error(e)

    return MediaUploadResponse(success=True, media_url=url)
