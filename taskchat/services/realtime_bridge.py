import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from taskchat.utils.debounce import Debouncer
from taskchat.utils.errors import STORE_ERRORS
from taskchat.utils.realtime_bus import ChangeEvent, change_channel


logger = logging.getLogger(__name__)

Resync = Callable[[], Awaitable[None]]
OnInsert = Callable[[ChangeEvent], Awaitable[None]]


class _Handle:
    """One open subscription and the task pumping it."""

    def __init__(self, channel: str, sub, task: asyncio.Task) -> None:
        self.channel = channel
        self.sub = sub
        self.task = task

    @property
    def idle(self) -> bool:
        return getattr(self.sub, "idle", True)

    async def release(self) -> None:
        try:
            await self.sub.cancel()
        finally:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass


class RealtimeBridge:
    """Change subscriptions owned by one chat session.

    Index scope: chats where the viewer is participant 1 or 2, and messages
    addressed to the viewer. Conversation scope: messages of the active chat,
    swapped whenever the active chat changes. Events schedule a full re-fetch
    of the owning component; inserts on the active chat are handed to
    ``on_insert`` first.
    """

    def __init__(
        self,
        bus,
        viewer_id: str,
        resync_index: Resync,
        resync_feed: Resync,
        on_insert: OnInsert,
        resync_delay: float = 0.3,
    ) -> None:
        self._bus = bus
        self._viewer_id = viewer_id
        self._on_insert = on_insert
        self._index_resync = Debouncer(resync_delay, resync_index, name="index-resync")
        self._feed_resync = Debouncer(resync_delay, resync_feed, name="feed-resync")
        self._index_handles: List[_Handle] = []
        self._conversation: Optional[_Handle] = None
        self._chat_id: Optional[str] = None
        self._open = False

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    @property
    def channels(self) -> List[str]:
        return [h.channel for h in self._handles()]

    def _handles(self) -> List[_Handle]:
        return self._index_handles + ([self._conversation] if self._conversation else [])

    @property
    def idle(self) -> bool:
        return all(h.idle for h in self._handles()) and self._index_resync.idle and self._feed_resync.idle

    async def _subscribe(self, table: str, column: str, value: str, handler) -> _Handle:
        channel = change_channel(table, column, value)

        async def on_message(raw: str) -> None:
            await handler(ChangeEvent.decode(raw))

        sub = await self._bus.subscribe(channel, on_message)
        task = asyncio.create_task(sub.run(), name=f"sub:{channel}")
        logger.debug("Subscribed %s to %s", self._viewer_id, channel)
        return _Handle(channel, sub, task)

    async def open(self) -> None:
        if self._open:
            return
        self._open = True
        filters: List[Tuple[str, str]] = [
            ("chats", "user1_id"),
            ("chats", "user2_id"),
            ("messages", "receiver_id"),
        ]
        try:
            for table, column in filters:
                self._index_handles.append(await self._subscribe(table, column, self._viewer_id, self._on_index_event))
        except STORE_ERRORS:
            await self.close()
            raise

    async def watch_conversation(self, chat_id: Optional[str]) -> None:
        previous, self._conversation = self._conversation, None
        self._chat_id = chat_id
        if previous is not None:
            try:
                await previous.release()
            except STORE_ERRORS:
                logger.warning("Releasing subscription %s failed", previous.channel, exc_info=True)
        if chat_id is None or not self._open:
            return
        handle = await self._subscribe("messages", "chat_id", chat_id, self._on_conversation_event)
        if self._chat_id != chat_id or self._conversation is not None or not self._open:
            # superseded by a newer switch while subscribing
            await handle.release()
            return
        self._conversation = handle

    async def _on_index_event(self, event: ChangeEvent) -> None:
        self._index_resync.trigger()

    async def _on_conversation_event(self, event: ChangeEvent) -> None:
        if event.new.get("chat_id") != self._chat_id:
            return
        if event.type == "INSERT":
            await self._on_insert(event)
        self._feed_resync.trigger()
        # own sends change the preview too
        self._index_resync.trigger()

    async def drain(self) -> bool:
        """Wait for queued events and pending re-syncs; used by tests and on shutdown."""
        waited = False
        if not all(h.idle for h in self._handles()):
            waited = True
            await asyncio.sleep(0)
        waited = await self._index_resync.drain() or waited
        waited = await self._feed_resync.drain() or waited
        return waited

    async def close(self) -> None:
        self._open = False
        self._index_resync.cancel()
        self._feed_resync.cancel()
        handles, self._index_handles = self._index_handles, []
        if self._conversation is not None:
            handles.append(self._conversation)
            self._conversation = None
        self._chat_id = None
        for handle in handles:
            try:
                await handle.release()
            except STORE_ERRORS:
                logger.warning("Releasing subscription %s failed", handle.channel, exc_info=True)

    async def __aenter__(self) -> "RealtimeBridge":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
