import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List

from taskchat.config import settings


logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[None]]

# Columns a change notification can be filtered on, per table
FILTER_COLUMNS: Dict[str, tuple] = {
    "chats": ("user1_id", "user2_id"),
    "messages": ("chat_id", "sender_id", "receiver_id"),
}


def change_channel(table: str, column: str, value: str) -> str:
    return f"changes:{table}:{column}={value}"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass
class ChangeEvent:
    """A row change pushed by the store."""

    table: str
    type: str  # INSERT | UPDATE | DELETE
    new: Dict[str, Any]

    def encode(self) -> str:
        return json.dumps({"table": self.table, "type": self.type, "new": self.new}, default=_json_default)

    @classmethod
    def decode(cls, raw: str) -> "ChangeEvent":
        data = json.loads(raw)
        return cls(table=data["table"], type=data["type"], new=data.get("new") or {})


async def publish_change(bus, table: str, event_type: str, row: Dict[str, Any]) -> None:
    payload = ChangeEvent(table=table, type=event_type, new=row).encode()
    for column in FILTER_COLUMNS.get(table, ()):
        value = row.get(column)
        if value:
            await bus.publish(change_channel(table, column, str(value)), payload)


class LocalBus:

    enabled = False

    def __init__(self) -> None:
        self._channels: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, channel: str, message: str) -> None:
        for queue in list(self._channels.get(channel, ())):
            queue.put_nowait(message)

    async def subscribe(self, channel: str, on_message: OnMessage):
        queue: asyncio.Queue = asyncio.Queue()
        self._channels[channel].append(queue)
        channels = self._channels

        class _Sub:
            _busy = False

            @property
            def idle(self_inner) -> bool:
                return queue.empty() and not self_inner._busy

            async def run(self_inner):
                while True:
                    data = await queue.get()
                    self_inner._busy = True
                    try:
                        await on_message(data)
                    except Exception:
                        logger.exception("Change handler failed on %s", channel)
                    finally:
                        self_inner._busy = False
                        queue.task_done()

            async def cancel(self_inner):
                queues = channels.get(channel)
                if queues and queue in queues:
                    queues.remove(queue)
                    if not queues:
                        del channels[channel]

        return _Sub()

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self) -> None:
        self._channels.clear()


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        import redis.asyncio as redis

        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: OnMessage):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True
            # redis delivers out of process; nothing to wait on locally
            idle = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                        if msg and msg.get("type") == "message":
                            data = msg.get("data")
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(data)
                    except Exception:
                        logger.exception("Redis subscription on %s failed", channel)
                        await asyncio.sleep(0.5)

            async def cancel(self_inner):
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                finally:
                    await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    if settings.redis_url:
        _bus = RedisBus(settings.redis_url)
        logger.info("Change notifications via Redis pub/sub")
    else:
        _bus = LocalBus()
        logger.info("Change notifications via in-process bus")
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None
