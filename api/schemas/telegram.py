"""
Telegram Schemas
The subset of the Bot API Update object the webhook consumes
"""

from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class TelegramModel(BaseModel):
    """Unknown Bot API fields are ignored"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class User(TelegramModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    username: Optional[str] = None


class Chat(TelegramModel):
    id: int
    type: Optional[str] = None


class Contact(TelegramModel):
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    user_id: Optional[int] = None


class SharedUser(TelegramModel):
    user_id: int


class UsersShared(TelegramModel):
    request_id: int
    users: List[SharedUser] = Field(default_factory=list)
    user_ids: List[int] = Field(default_factory=list)

    @property
    def first_user_id(self) -> Optional[int]:
        if self.users:
            return self.users[0].user_id
        if self.user_ids:
            return self.user_ids[0]
        return None


class PhotoSize(TelegramModel):
    file_id: str
    width: int = 0
    height: int = 0
    file_size: Optional[int] = None


class Message(TelegramModel):
    message_id: int
    from_user: Optional[User] = Field(None, alias="from")
    chat: Chat
    text: Optional[str] = None
    caption: Optional[str] = None
    contact: Optional[Contact] = None
    users_shared: Optional[UsersShared] = None
    photo: List[PhotoSize] = Field(default_factory=list)

    @property
    def largest_photo(self) -> Optional[PhotoSize]:
        if not self.photo:
            return None
        return max(self.photo, key=lambda p: p.width * p.height)


class CallbackQuery(TelegramModel):
    id: str
    from_user: User = Field(..., alias="from")
    message: Optional[Message] = None
    data: Optional[str] = None


class Update(TelegramModel):
    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None


class WebhookAck(BaseModel):
    """Body returned to Telegram; always 200"""
    ok: bool = True
    handled: Optional[str] = None
