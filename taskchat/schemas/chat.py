from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ChatRow(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    user1_id: str
    user2_id: str
    created_at: datetime

    @property
    def participants(self) -> Tuple[str, str]:
        return self.user1_id, self.user2_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, viewer_id: str) -> str:
        if viewer_id == self.user1_id:
            return self.user2_id
        if viewer_id == self.user2_id:
            return self.user1_id
        raise ValueError(f"User {viewer_id} is not a participant of chat {self.id}")


class Conversation(BaseModel):

    id: str
    participant_id: str
    participant_name: str
    participant_image: Optional[str] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = 0
    created_at: Optional[datetime] = None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.last_message_time or self.created_at


class StartConversation(BaseModel):

    participant_id: str = Field(min_length=1)
