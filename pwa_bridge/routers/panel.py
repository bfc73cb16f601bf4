"""Endpoints used by the seller panel and the payment system."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from pwa_bridge.dependencies import Bridge, get_bridge, require_admin_token, to_http_error
from pwa_bridge.logging_config import get_logger
from pwa_bridge.schemas.client import IdentityRequest
from pwa_bridge.schemas.panel import (
    AdminMessageRequest,
    AdminMessageResponse,
    NoteRequest,
    NoteResponse,
    PaidContentRequest,
    PaidContentResponse,
    UnlockResponse,
)
from pwa_bridge.services.errors import BridgeError
from pwa_bridge.services.identity import require_identity

logger = get_logger("panel_router")

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.post("/send-admin-message", response_model=AdminMessageResponse)
async def send_admin_message(request: AdminMessageRequest, bridge: Bridge = Depends(get_bridge)):
    try:
        identity = require_identity(request.email, request.seller_slug)
        outcome = await bridge.router.send_admin_message(identity, request.text)
    except BridgeError as e:
        logger.error(f"send-admin-message failed: {e}")
        raise to_http_error(e)
    return AdminMessageResponse(success=True, effects=outcome.effects)


@router.get("/note", response_model=NoteResponse)
async def get_note(
    email: Optional[str] = None,
    seller_slug: Optional[str] = Query(default=None, alias="sellerSlug"),
    bridge: Bridge = Depends(get_bridge),
):
    try:
        identity = require_identity(email, seller_slug)
        note = await bridge.router.get_note(identity)
    except BridgeError as e:
        raise to_http_error(e)
    return NoteResponse(success=True, note=note)


@router.post("/note", response_model=NoteResponse)
async def add_note(request: NoteRequest, bridge: Bridge = Depends(get_bridge)):
    try:
        identity = require_identity(request.email, request.seller_slug)
        note = await bridge.router.add_note(identity, request.note)
    except BridgeError as e:
        logger.error(f"note update failed: {e}")
        raise to_http_error(e)
    return NoteResponse(success=True, note=note)


@router.post("/send-paid-content", response_model=PaidContentResponse)
async def send_paid_content(request: PaidContentRequest, bridge: Bridge = Depends(get_bridge)):
    try:
        identity = require_identity(request.email, request.seller_slug)
        item = await bridge.router.lock_paid_content(
            identity,
            media_ref=request.media_url,
            amount=request.amount,
            text=request.text,
            checkout_ref=request.checkout_url,
            is_media=request.is_media,
        )
    except BridgeError as e:
        raise to_http_error(e)
    return PaidContentResponse(success=True, amount=item.amount)


@router.post("/unlock", response_model=UnlockResponse)
async def unlock(request: IdentityRequest, bridge: Bridge = Depends(get_bridge)):
    """Payment confirmed: release the pending item. Nothing pending is not an error."""
    try:
        identity = require_identity(request.email, request.seller_slug)
        item = await bridge.router.unlock_paid_content(identity)
    except BridgeError as e:
        raise to_http_error(e)

    if item is None:
        return UnlockResponse(success=True, unlocked=False, message="Nothing pending")
    return UnlockResponse(success=True, unlocked=True, media_url=item.media_ref, amount=item.amount)
