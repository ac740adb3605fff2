import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from taskchat.config import Settings, settings as default_settings
from taskchat.repositories.store import ChatStore
from taskchat.schemas.chat import Conversation
from taskchat.schemas.message import Attachment, MessageRow
from taskchat.services.composer import Composer
from taskchat.services.conversation_index import ConversationIndex
from taskchat.services.message_feed import MessageFeed
from taskchat.services.read_marker import ReadStateMarker
from taskchat.services.realtime_bridge import RealtimeBridge
from taskchat.utils.errors import STORE_ERRORS
from taskchat.utils.realtime_bus import ChangeEvent


logger = logging.getLogger(__name__)

OnUpdate = Callable[["ChatSession"], Awaitable[None]]
OnError = Callable[[str, str], Awaitable[None]]

LOAD_CHATS_FAILED = "Failed to load chats. Please try again later."
LOAD_MESSAGES_FAILED = "Failed to load messages. Please try again later."
SEND_FAILED = "Failed to send message. Please try again."
UPDATE_FAILED = "Failed to update messages. Please refresh the page."


async def _ignore_update(session: "ChatSession") -> None:
    return None


async def _log_error(title: str, description: str) -> None:
    logger.warning("%s: %s", title, description)


class ChatSession:
    """Chat state for one open client view.

    Owns the conversation list, the active feed, the realtime subscriptions
    and the read marker. Created on connect, closed on disconnect.
    """

    def __init__(
        self,
        viewer_id: str,
        store: ChatStore,
        settings: Optional[Settings] = None,
        on_update: Optional[OnUpdate] = None,
        on_error: Optional[OnError] = None,
    ) -> None:
        cfg = settings or default_settings
        self.viewer_id = viewer_id
        self._store = store
        self._on_update = on_update or _ignore_update
        self._on_error = on_error or _log_error
        self.index = ConversationIndex(store.chats, store.messages, store.profiles, cfg.unknown_user_name)
        self.feed = MessageFeed(store.messages, store.profiles, cfg.unknown_user_name)
        self.marker = ReadStateMarker(store.messages, viewer_id, cfg.read_delay)
        self.composer = Composer(store.messages, viewer_id)
        self.bridge = RealtimeBridge(
            store.bus,
            viewer_id,
            resync_index=self.refresh_conversations,
            resync_feed=self.refresh_feed,
            on_insert=self._on_insert,
            resync_delay=cfg.resync_delay,
        )
        self.active_chat_id: Optional[str] = None
        self._closed = False

    @property
    def conversations(self):
        return self.index.conversations

    @property
    def active_conversation(self) -> Optional[Conversation]:
        if self.active_chat_id is None:
            return None
        return self.index.get(self.active_chat_id)

    async def open(self, target_chat_id: Optional[str] = None) -> None:
        try:
            await self.bridge.open()
        except STORE_ERRORS:
            # the list still loads; it just won't live-update
            logger.exception("Subscribing to changes for %s failed", self.viewer_id)
            await self._on_error("Error", UPDATE_FAILED)
        await self.refresh_conversations()
        if self.active_chat_id is not None or not self.conversations:
            return
        # an explicit navigation target wins over the default first chat
        if target_chat_id:
            if self.index.get(target_chat_id) is not None:
                await self.select_conversation(target_chat_id)
            return
        await self.select_conversation(self.conversations[0].id)

    async def refresh_conversations(self) -> None:
        try:
            changed = await self.index.refresh(self.viewer_id)
        except STORE_ERRORS:
            logger.exception("Loading chats for %s failed", self.viewer_id)
            await self._on_error("Error", LOAD_CHATS_FAILED)
            return
        if changed:
            await self._emit()

    async def select_conversation(self, chat_id: str) -> bool:
        if self.index.get(chat_id) is None:
            # may have been created since the last index load
            await self.refresh_conversations()
            if self.index.get(chat_id) is None:
                return False
        if chat_id != self.active_chat_id:
            # a pending mark-read belongs to the chat being left
            self.marker.cancel()
        self.active_chat_id = chat_id
        self.feed.activate(chat_id)
        try:
            await self.bridge.watch_conversation(chat_id)
        except STORE_ERRORS:
            # the feed still loads; it just won't live-update
            logger.exception("Subscribing to chat %s failed", chat_id)
            await self._on_error("Error", UPDATE_FAILED)
        if self.active_chat_id != chat_id:
            return False
        await self._load_feed(chat_id)
        return True

    async def refresh_feed(self) -> None:
        if self.active_chat_id is not None:
            await self._load_feed(self.active_chat_id)

    async def _load_feed(self, chat_id: str) -> None:
        try:
            loaded = await self.feed.load(chat_id)
        except STORE_ERRORS:
            logger.exception("Loading messages for chat %s failed", chat_id)
            if chat_id == self.active_chat_id:
                await self._on_error("Error", LOAD_MESSAGES_FAILED)
            return
        if loaded:
            self.marker.observe(self.feed.chat_id, self.feed.messages)
            await self._emit()

    async def _on_insert(self, event: ChangeEvent) -> None:
        try:
            row = MessageRow.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed message insert: %r", event.new)
            return
        if row.chat_id != self.active_chat_id:
            return
        try:
            annotated = await self.feed.annotate([row])
        except STORE_ERRORS:
            logger.exception("Handling inserted message %s failed", row.id)
            await self._on_error("Error", UPDATE_FAILED)
            return
        if not self.feed.append(annotated[0]):
            return
        if row.is_unread_for(self.viewer_id):
            try:
                await self._store.messages.mark_read([row.id], self.viewer_id)
            except STORE_ERRORS:
                # the next re-fetch reconciles
                logger.warning("Marking message %s read failed", row.id, exc_info=True)
            else:
                self.feed.mark_local_read([row.id])
        self.marker.observe(self.feed.chat_id, self.feed.messages)
        await self._emit()

    async def send_message(self, content: Optional[str], attachment: Optional[Attachment] = None) -> Optional[MessageRow]:
        conversation = self.active_conversation
        if conversation is None:
            return None
        try:
            return await self.composer.submit(conversation, content, attachment)
        except STORE_ERRORS:
            logger.exception("Sending message in chat %s failed", conversation.id)
            await self._on_error("Error", SEND_FAILED)
            return None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "conversations": [c.model_dump(mode="json") for c in self.conversations],
            "active_chat_id": self.active_chat_id,
            "feed_state": self.feed.state.value,
            "messages": [m.model_dump(mode="json") for m in self.feed.messages] if self.feed.chat_id == self.active_chat_id else [],
        }

    async def _emit(self) -> None:
        if self._closed:
            return
        await self._on_update(self)

    async def settle(self, max_rounds: int = 100) -> None:
        """Wait until queued change events and debounced work have run.

        Background work normally completes on its own; this exists so tests
        and shutdown can synchronise with it.
        """
        for _ in range(max_rounds):
            waited = await self.bridge.drain()
            waited = await self.marker.drain() or waited
            if not waited and self.bridge.idle and self.marker.idle:
                return
            await asyncio.sleep(0)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.marker.cancel()
        await self.bridge.close()
        logger.debug("Closed chat session for %s", self.viewer_id)

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
