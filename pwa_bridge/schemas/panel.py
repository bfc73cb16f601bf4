from typing import Optional

from pydantic import BaseModel, Field

from pwa_bridge.schemas.client import IdentityRequest


class AdminMessageRequest(IdentityRequest):
    text: Optional[str] = None


class AdminMessageResponse(BaseModel):
    success: bool
    effects: list[str] = []


class NoteRequest(IdentityRequest):
    note: Optional[str] = None


class NoteResponse(BaseModel):
    success: bool
    note: str


class PaidContentRequest(IdentityRequest):
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    amount: float = Field(default=0, ge=0)
    text: str = ""
    checkout_url: Optional[str] = Field(default=None, alias="checkoutUrl")
    is_media: bool = Field(default=True, alias="isMedia")


class PaidContentResponse(BaseModel):
    success: bool
    amount: float


class UnlockResponse(BaseModel):
    success: bool
    unlocked: bool
    media_url: Optional[str] = Field(default=None, serialization_alias="mediaUrl")
    amount: Optional[float] = None
    message: Optional[str] = None
