from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# "from" is reserved in Python; accepted at any nesting depth.
FROM_ALIAS = AliasChoices("from", "from_user")


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None
    is_forum: Optional[bool] = None


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, validation_alias=FROM_ALIAS)
    text: Optional[str] = None
    message_thread_id: Optional[int] = None  # Topic ID for forum groups
    is_topic_message: Optional[bool] = None
    sender_chat: Optional[TelegramChat] = None
    caption: Optional[str] = None
    photo: Optional[list[Any]] = None
    document: Optional[Any] = None
    voice: Optional[Any] = None
    video: Optional[Any] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def sender_is_bot(self) -> bool:
        return bool(self.from_user and self.from_user.is_bot)


class TelegramCallbackQuery(BaseModel):
    id: str
    from_user: TelegramUser = Field(validation_alias=FROM_ALIAS)
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None  # callback_data from button


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class TelegramWebhookResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    action: Optional[str] = None
