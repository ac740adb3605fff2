"""Shared fixtures: in-memory repositories wired to the real in-process bus."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from taskchat.config import Settings
from taskchat.repositories.store import ChatStore
from taskchat.schemas.chat import ChatRow
from taskchat.schemas.message import MessageRow
from taskchat.schemas.profile import ProfileRow
from taskchat.utils.errors import StoreError
from taskchat.utils.realtime_bus import LocalBus, publish_change

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


class FakeProfileRepository:

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.failing: set = set()
        self.lookups: List[str] = []

    def add(self, user_id: str, username: Optional[str], avatar_url: Optional[str] = None) -> None:
        self.rows[user_id] = {"_id": user_id, "username": username, "avatar_url": avatar_url}

    async def get(self, user_id: str) -> Optional[ProfileRow]:
        self.lookups.append(user_id)
        if user_id in self.failing:
            raise StoreError(f"profile lookup failed for {user_id}")
        row = self.rows.get(user_id)
        return ProfileRow.model_validate(row) if row else None


class FakeChatRepository:

    def __init__(self, bus) -> None:
        self._bus = bus
        self.rows: List[Dict[str, Any]] = []
        self.fail = False
        self._ids = itertools.count(1)

    def add(self, user1_id: str, user2_id: str, created_at: Optional[datetime] = None, chat_id: Optional[str] = None) -> ChatRow:
        row = {
            "_id": chat_id or f"chat{next(self._ids)}",
            "user1_id": user1_id,
            "user2_id": user2_id,
            "created_at": created_at or BASE_TIME,
        }
        self.rows.append(row)
        return ChatRow.model_validate(row)

    async def get(self, chat_id: str) -> Optional[ChatRow]:
        for row in self.rows:
            if row["_id"] == chat_id:
                return ChatRow.model_validate(row)
        return None

    async def list_for_user(self, user_id: str) -> List[ChatRow]:
        if self.fail:
            raise StoreError("chats query failed")
        rows = [r for r in self.rows if user_id in (r["user1_id"], r["user2_id"])]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [ChatRow.model_validate(r) for r in rows]

    async def get_or_create(self, user_a: str, user_b: str) -> ChatRow:
        for row in self.rows:
            if {row["user1_id"], row["user2_id"]} == {user_a, user_b}:
                return ChatRow.model_validate(row)
        chat = self.add(user_a, user_b, created_at=datetime.now(timezone.utc))
        await publish_change(self._bus, "chats", "INSERT", dict(self.rows[-1]))
        return chat


class FakeMessageRepository:

    def __init__(self, bus) -> None:
        self._bus = bus
        self.rows: List[Dict[str, Any]] = []
        self.inserted: List[Dict[str, Any]] = []
        self.mark_read_calls: List[List[str]] = []
        self.fetches: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.fail_list = False
        self.fail_insert = False
        self.fail_mark_read = False
        self._ids = itertools.count(1)

    def add(self, chat_id: str, sender_id: str, receiver_id: str, content: Optional[str], timestamp: datetime, read: bool = False) -> MessageRow:
        row = {
            "_id": f"m{next(self._ids)}",
            "chat_id": chat_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "attachment": None,
            "timestamp": timestamp,
            "read": read,
        }
        self.rows.append(row)
        return MessageRow.model_validate(row)

    def gate(self, chat_id: str) -> asyncio.Event:
        self.gates[chat_id] = asyncio.Event()
        return self.gates[chat_id]

    async def insert(self, doc: Dict[str, Any]) -> MessageRow:
        if self.fail_insert:
            raise StoreError("insert failed")
        row = dict(doc)
        row["_id"] = f"m{next(self._ids)}"
        row.setdefault("timestamp", datetime.now(timezone.utc))
        row.setdefault("read", False)
        self.rows.append(row)
        self.inserted.append(row)
        await publish_change(self._bus, "messages", "INSERT", dict(row))
        return MessageRow.model_validate(row)

    async def list_by_chat(self, chat_id: str) -> List[MessageRow]:
        self.fetches.append(chat_id)
        if self.fail_list:
            raise StoreError("messages query failed")
        gate = self.gates.get(chat_id)
        if gate is not None:
            await gate.wait()
        rows = sorted((r for r in self.rows if r["chat_id"] == chat_id), key=lambda r: r["timestamp"])
        return [MessageRow.model_validate(r) for r in rows]

    async def list_for_chats(self, chat_ids) -> List[MessageRow]:
        ids = set(chat_ids)
        return [MessageRow.model_validate(r) for r in self.rows if r["chat_id"] in ids]

    async def mark_read(self, message_ids, receiver_id: str) -> int:
        self.mark_read_calls.append(list(message_ids))
        if self.fail_mark_read:
            raise StoreError("update failed")
        updated = 0
        for row in self.rows:
            if row["_id"] in message_ids and row["receiver_id"] == receiver_id and not row["read"]:
                row["read"] = True
                updated += 1
                await publish_change(self._bus, "messages", "UPDATE", dict(row))
        return updated

    def unread_for(self, chat_id: str, receiver_id: str) -> int:
        return sum(1 for r in self.rows if r["chat_id"] == chat_id and r["receiver_id"] == receiver_id and not r["read"])


@pytest.fixture
def bus():
    return LocalBus()


@pytest.fixture
def store(bus):
    return ChatStore(
        chats=FakeChatRepository(bus),
        messages=FakeMessageRepository(bus),
        profiles=FakeProfileRepository(),
        bus=bus,
    )


@pytest.fixture
def fast_settings():
    """Settings with short debounce windows."""
    return Settings(read_delay=0.01, resync_delay=0.01)


@pytest.fixture
def people(store):
    store.profiles.add("viewer", "Vera")
    store.profiles.add("peter", "Peter", avatar_url="https://cdn.example/peter.png")
    store.profiles.add("quinn", "Quinn")
    store.profiles.add("rosa", "Rosa")
    return store
