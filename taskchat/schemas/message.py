from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class Attachment(BaseModel):

    name: str
    type: str
    size: int = Field(ge=0)
    url: str


class MessageRow(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    chat_id: str
    sender_id: str
    receiver_id: str
    content: Optional[str] = None
    attachment: Optional[Attachment] = None
    timestamp: datetime
    read: bool = False

    @field_validator("attachment", mode="before")
    @classmethod
    def _default_malformed_attachment(cls, value: Any) -> Any:
        # optional metadata: a broken attachment is dropped, not fatal
        if value is None or isinstance(value, Attachment):
            return value
        try:
            return Attachment.model_validate(value)
        except ValidationError:
            return None

    @field_validator("read", mode="before")
    @classmethod
    def _default_read(cls, value: Any) -> Any:
        return False if value is None else value

    def is_unread_for(self, viewer_id: str) -> bool:
        return self.receiver_id == viewer_id and not self.read


class FeedMessage(MessageRow):

    sender_name: str


class SendMessageRequest(BaseModel):

    content: Optional[str] = None
    attachment: Optional[Attachment] = None


class SendMessageResult(BaseModel):

    sent: bool
    message: Optional[MessageRow] = None
