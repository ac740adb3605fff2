from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from taskchat.models.profile import ProfileDocument
from taskchat.schemas.profile import ProfileRow


class ProfileRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("profiles")

    async def get(self, user_id: str) -> Optional[ProfileRow]:
        doc: Optional[ProfileDocument] = await self._collection.find_one({"_id": user_id}, {"username": 1, "avatar_url": 1})
        if not doc:
            return None
        doc["_id"] = str(doc["_id"])
        return ProfileRow.model_validate(doc)
