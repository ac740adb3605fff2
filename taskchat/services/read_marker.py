import logging
from typing import List, Optional, Sequence

from taskchat.repositories.message_repository import MessageRepository
from taskchat.schemas.message import MessageRow
from taskchat.utils.debounce import Debouncer
from taskchat.utils.errors import STORE_ERRORS


logger = logging.getLogger(__name__)


class ReadStateMarker:
    """Marks inbound unread messages of the active conversation as read.

    ``observe`` is called whenever the loaded message set changes; the batched
    update runs once the set has been quiet for ``delay`` seconds.
    """

    def __init__(self, messages: MessageRepository, viewer_id: Optional[str], delay: float = 0.5) -> None:
        self._messages = messages
        self._viewer_id = viewer_id
        self._chat_id: Optional[str] = None
        self._observed: List[MessageRow] = []
        self._debouncer = Debouncer(delay, self.flush, name="read-marker")

    @property
    def idle(self) -> bool:
        return self._debouncer.idle

    def observe(self, chat_id: Optional[str], messages: Sequence[MessageRow]) -> None:
        self._chat_id = chat_id
        self._observed = list(messages)
        self._debouncer.trigger()

    def unread_ids(self) -> List[str]:
        if not self._viewer_id:
            return []
        return [m.id for m in self._observed if m.chat_id == self._chat_id and m.is_unread_for(self._viewer_id)]

    async def flush(self) -> int:
        if not self._viewer_id or not self._chat_id or not self._observed:
            return 0
        ids = self.unread_ids()
        if not ids:
            return 0
        try:
            updated = await self._messages.mark_read(ids, self._viewer_id)
        except STORE_ERRORS:
            logger.warning("Marking %d messages read in chat %s failed", len(ids), self._chat_id, exc_info=True)
            return 0
        logger.debug("Marked %d messages read in chat %s", updated, self._chat_id)
        return updated

    async def drain(self) -> bool:
        """Wait for a pending update; used by tests and on shutdown."""
        return await self._debouncer.drain()

    def cancel(self) -> None:
        """Drop the pending update and forget the observed set."""
        self._debouncer.cancel()
        self._chat_id = None
        self._observed = []
