"""Frames on the live connection: {"event": <name>, "data": {...}}."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class InitData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    seller_slug: str = Field(alias="sellerSlug")


class ClientMessageData(BaseModel):
    text: Optional[str] = None


class InitEvent(BaseModel):
    event: Literal["init"]
    data: InitData


class ClientMessageEvent(BaseModel):
    event: Literal["client_message"]
    data: ClientMessageData


ClientEvent = Annotated[Union[InitEvent, ClientMessageEvent], Field(discriminator="event")]

client_event_adapter = TypeAdapter(ClientEvent)
