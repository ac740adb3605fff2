import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from taskchat.repositories.chat_repository import ChatRepository
from taskchat.repositories.message_repository import MessageRepository
from taskchat.repositories.profile_repository import ProfileRepository
from taskchat.schemas.chat import ChatRow, Conversation
from taskchat.schemas.message import MessageRow
from taskchat.services.profile_lookup import display_name, lookup_profiles


logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _activity_key(conversation: Conversation) -> datetime:
    return conversation.last_activity or _EPOCH


def filter_conversations(conversations: List[Conversation], query: Optional[str]) -> List[Conversation]:
    if not query:
        return list(conversations)
    needle = query.lower()
    return [c for c in conversations if needle in c.participant_name.lower()]


class ConversationIndex:
    """Conversation list for one viewer, most recent activity first."""

    def __init__(
        self,
        chats: ChatRepository,
        messages: MessageRepository,
        profiles: ProfileRepository,
        unknown_name: str = "Unknown User",
    ) -> None:
        self._chats = chats
        self._messages = messages
        self._profiles = profiles
        self._unknown_name = unknown_name
        self._generation = 0
        self.conversations: List[Conversation] = []

    async def load(self, viewer_id: str) -> List[Conversation]:
        chats = await self._chats.list_for_user(viewer_id)
        rows = await self._messages.list_for_chats([chat.id for chat in chats])
        by_chat: Dict[str, List[MessageRow]] = defaultdict(list)
        for row in rows:
            by_chat[row.chat_id].append(row)

        participants = {chat.id: chat.other_participant(viewer_id) for chat in chats}
        profiles = await lookup_profiles(self._profiles, participants.values())

        conversations = [
            self._describe(chat, participants[chat.id], profiles.get(participants[chat.id]), by_chat.get(chat.id, []), viewer_id)
            for chat in chats
        ]
        # stable: chats without messages keep the store's created_at order
        conversations.sort(key=_activity_key, reverse=True)
        return conversations

    def _describe(self, chat: ChatRow, participant_id: str, profile, messages: List[MessageRow], viewer_id: str) -> Conversation:
        latest = max(messages, key=lambda m: m.timestamp) if messages else None
        return Conversation(
            id=chat.id,
            participant_id=participant_id,
            participant_name=display_name(profile, self._unknown_name),
            participant_image=profile.avatar_url if profile else None,
            last_message=latest.content if latest else None,
            last_message_time=latest.timestamp if latest else None,
            unread_count=sum(1 for m in messages if m.is_unread_for(viewer_id)),
            created_at=chat.created_at,
        )

    async def refresh(self, viewer_id: str) -> bool:
        """Reload in place; returns False when a newer refresh superseded this one."""
        self._generation += 1
        generation = self._generation
        conversations = await self.load(viewer_id)
        if generation != self._generation:
            logger.debug("Discarding superseded conversation list for %s", viewer_id)
            return False
        self.conversations = conversations
        return True

    def get(self, chat_id: str) -> Optional[Conversation]:
        for conversation in self.conversations:
            if conversation.id == chat_id:
                return conversation
        return None
