import logging
from typing import List, Optional

from taskchat.repositories.store import ChatStore
from taskchat.schemas.chat import ChatRow, Conversation
from taskchat.schemas.message import Attachment, FeedMessage, MessageRow
from taskchat.services.composer import Composer
from taskchat.services.conversation_index import ConversationIndex, filter_conversations
from taskchat.services.message_feed import MessageFeed


logger = logging.getLogger(__name__)


class ChatService:

    def __init__(self, store: ChatStore, unknown_name: str = "Unknown User") -> None:
        self._store = store
        self._unknown_name = unknown_name

    def _index(self) -> ConversationIndex:
        return ConversationIndex(self._store.chats, self._store.messages, self._store.profiles, self._unknown_name)

    async def list_conversations(self, user_id: str, query: Optional[str] = None) -> List[Conversation]:
        conversations = await self._index().load(user_id)
        return filter_conversations(conversations, query)

    async def start_conversation(self, user_id: str, participant_id: str) -> Conversation:
        if participant_id == user_id:
            raise ValueError("Cannot start a chat with yourself")
        if await self._store.profiles.get(participant_id) is None:
            raise LookupError(f"Unknown user {participant_id}")
        chat = await self._store.chats.get_or_create(user_id, participant_id)
        for conversation in await self._index().load(user_id):
            if conversation.id == chat.id:
                return conversation
        raise LookupError(f"Chat {chat.id} not visible to {user_id}")

    async def _participant_chat(self, user_id: str, chat_id: str) -> ChatRow:
        chat = await self._store.chats.get(chat_id)
        if chat is None or not chat.has_participant(user_id):
            raise LookupError(f"Chat {chat_id} not found")
        return chat

    async def get_feed(self, user_id: str, chat_id: str) -> List[FeedMessage]:
        await self._participant_chat(user_id, chat_id)
        feed = MessageFeed(self._store.messages, self._store.profiles, self._unknown_name)
        await feed.load(chat_id)
        return feed.messages

    async def send_message(self, user_id: str, chat_id: str, content: Optional[str], attachment: Optional[Attachment] = None) -> Optional[MessageRow]:
        chat = await self._participant_chat(user_id, chat_id)
        # the composer only needs the chat id and the recipient
        conversation = Conversation(
            id=chat.id,
            participant_id=chat.other_participant(user_id),
            participant_name=self._unknown_name,
            created_at=chat.created_at,
        )
        return await Composer(self._store.messages, user_id).submit(conversation, content, attachment)

    async def mark_read(self, user_id: str, chat_id: str) -> int:
        await self._participant_chat(user_id, chat_id)
        rows = await self._store.messages.list_by_chat(chat_id)
        unread = [row.id for row in rows if row.is_unread_for(user_id)]
        if not unread:
            return 0
        updated = await self._store.messages.mark_read(unread, user_id)
        logger.info("User %s marked %d messages read in chat %s", user_id, updated, chat_id)
        return updated
