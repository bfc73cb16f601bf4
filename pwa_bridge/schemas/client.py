from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IdentityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    seller_slug: Optional[str] = Field(default=None, alias="sellerSlug")


class RegisterClientResponse(BaseModel):
    success: bool
    topic_id: str = Field(serialization_alias="topicId")
    is_new: bool = Field(serialization_alias="isNew")


class TopicResponse(BaseModel):
    success: bool
    topic_id: str = Field(serialization_alias="topicId")


class ClientMessageRequest(IdentityRequest):
    text: Optional[str] = None


class ClientMessageResponse(BaseModel):
    success: bool
    action: str
    effects: list[str] = []
    message: Optional[str] = None


class HistoryItem(BaseModel):
    sender: str
    text: str
    created_at: datetime = Field(serialization_alias="createdAt")
    topic_id: Optional[str] = Field(default=None, serialization_alias="topicId")


class HistoryResponse(BaseModel):
    success: bool
    messages: list[HistoryItem]


class MediaUploadResponse(BaseModel):
    success: bool
    media_url: str = Field(serialization_alias="mediaUrl")
