from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from taskchat.models.message import MessageDocument
from taskchat.schemas.message import MessageRow
from taskchat.utils.ids import normalize_id, to_object_id
from taskchat.utils.realtime_bus import publish_change


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase, bus) -> None:
        self._db = db
        self._bus = bus

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("chat_id", ASCENDING), ("timestamp", ASCENDING)])
        await self.collection.create_index([("sender_id", ASCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("read", ASCENDING)])

    async def insert(self, doc: MessageDocument) -> MessageRow:
        doc = MessageDocument(**doc)
        doc.setdefault("timestamp", datetime.now(timezone.utc))
        doc.setdefault("read", False)
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        await publish_change(self._bus, "messages", "INSERT", doc)
        return MessageRow.model_validate(doc)

    async def list_by_chat(self, chat_id: str) -> List[MessageRow]:
        cursor = self.collection.find({"chat_id": chat_id}).sort([("timestamp", ASCENDING), ("_id", ASCENDING)])
        items = await cursor.to_list(length=None)
        return [MessageRow.model_validate(normalize_id(it)) for it in items]

    async def list_for_chats(self, chat_ids: Sequence[str]) -> List[MessageRow]:
        if not chat_ids:
            return []
        cursor = self.collection.find({"chat_id": {"$in": list(chat_ids)}}).sort("timestamp", ASCENDING)
        items = await cursor.to_list(length=None)
        return [MessageRow.model_validate(normalize_id(it)) for it in items]

    async def mark_read(self, message_ids: Sequence[str], receiver_id: str) -> int:
        if not message_ids:
            return 0
        query: Dict[str, Any] = {
            "_id": {"$in": [to_object_id(mid) for mid in message_ids]},
            "receiver_id": receiver_id,
            "read": False,
        }
        # snapshot the rows that will flip so each gets its own change notification
        pending = await self.collection.find(query).to_list(length=None)
        if not pending:
            return 0
        result = await self.collection.update_many(
            {"_id": {"$in": [doc["_id"] for doc in pending]}, "read": False},
            {"$set": {"read": True}},
        )
        for doc in pending:
            doc["read"] = True
            await publish_change(self._bus, "messages", "UPDATE", normalize_id(doc))
        return result.modified_count or 0
