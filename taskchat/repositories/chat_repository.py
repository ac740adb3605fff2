from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from taskchat.models.chat import ChatDocument
from taskchat.schemas.chat import ChatRow
from taskchat.utils.ids import normalize_id, to_object_id
from taskchat.utils.realtime_bus import publish_change


class ChatRepository:

    def __init__(self, db: AsyncIOMotorDatabase, bus) -> None:
        self._db = db
        self._bus = bus

    @property
    def collection(self):
        return self._db["chats"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user1_id", ASCENDING)])
        await self.collection.create_index([("user2_id", ASCENDING)])
        await self.collection.create_index([("user1_id", ASCENDING), ("user2_id", ASCENDING)])

    async def get(self, chat_id: str) -> Optional[ChatRow]:
        doc = await self.collection.find_one({"_id": to_object_id(chat_id)})
        if not doc:
            return None
        return ChatRow.model_validate(normalize_id(doc))

    async def list_for_user(self, user_id: str) -> List[ChatRow]:
        query = {"$or": [{"user1_id": user_id}, {"user2_id": user_id}]}
        cursor = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        items = await cursor.to_list(length=None)
        return [ChatRow.model_validate(normalize_id(it)) for it in items]

    async def get_or_create(self, user_a: str, user_b: str) -> ChatRow:
        existing = await self.collection.find_one({
            "$or": [
                {"user1_id": user_a, "user2_id": user_b},
                {"user1_id": user_b, "user2_id": user_a},
            ]
        })
        if existing:
            return ChatRow.model_validate(normalize_id(existing))
        doc: ChatDocument = {
            "user1_id": user_a,
            "user2_id": user_b,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        await publish_change(self._bus, "chats", "INSERT", doc)
        return ChatRow.model_validate(doc)
