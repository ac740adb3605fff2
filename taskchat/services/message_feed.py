import logging
from enum import Enum
from typing import Iterable, List, Optional

from taskchat.repositories.message_repository import MessageRepository
from taskchat.repositories.profile_repository import ProfileRepository
from taskchat.schemas.message import FeedMessage, MessageRow
from taskchat.services.profile_lookup import display_name, lookup_profiles


logger = logging.getLogger(__name__)


class FeedState(str, Enum):

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    STALE = "stale"


class MessageFeed:
    """Ordered message history of the active conversation.

    Every refresh is a full re-fetch. A fetch that finishes after the feed
    moved to another conversation, or after a newer fetch started, is dropped.
    """

    def __init__(self, messages: MessageRepository, profiles: ProfileRepository, unknown_name: str = "Unknown User") -> None:
        self._messages = messages
        self._profiles = profiles
        self._unknown_name = unknown_name
        self._generation = 0
        self.chat_id: Optional[str] = None
        self.messages: List[FeedMessage] = []
        self.state = FeedState.IDLE

    def activate(self, chat_id: str) -> None:
        if chat_id != self.chat_id:
            self.messages = []
        self.chat_id = chat_id
        self.state = FeedState.IDLE

    def mark_stale(self) -> None:
        if self.state == FeedState.LOADED:
            self.state = FeedState.STALE

    async def annotate(self, rows: Iterable[MessageRow]) -> List[FeedMessage]:
        rows = list(rows)
        profiles = await lookup_profiles(self._profiles, (row.sender_id for row in rows))
        return [
            FeedMessage(**row.model_dump(), sender_name=display_name(profiles.get(row.sender_id), self._unknown_name))
            for row in rows
        ]

    async def load(self, chat_id: Optional[str] = None) -> bool:
        chat_id = chat_id or self.chat_id
        if chat_id is None:
            return False
        if self.chat_id is None:
            self.chat_id = chat_id
        self._generation += 1
        generation = self._generation
        self.state = FeedState.LOADING
        try:
            rows = await self._messages.list_by_chat(chat_id)
            messages = await self.annotate(rows)
        except Exception:
            if self._is_current(generation, chat_id):
                self.state = FeedState.STALE
            raise
        if not self._is_current(generation, chat_id):
            logger.debug("Discarding stale feed fetch for chat %s", chat_id)
            return False
        self.messages = messages
        self.state = FeedState.LOADED
        return True

    def _is_current(self, generation: int, chat_id: str) -> bool:
        return generation == self._generation and chat_id == self.chat_id

    def append(self, message: FeedMessage) -> bool:
        if message.chat_id != self.chat_id:
            return False
        if any(m.id == message.id for m in self.messages):
            return False
        # keep non-decreasing timestamp order
        index = len(self.messages)
        while index > 0 and self.messages[index - 1].timestamp > message.timestamp:
            index -= 1
        self.messages.insert(index, message)
        self.mark_stale()
        return True

    def mark_local_read(self, message_ids: Iterable[str]) -> None:
        ids = set(message_ids)
        self.messages = [
            m.model_copy(update={"read": True}) if m.id in ids else m
            for m in self.messages
        ]
