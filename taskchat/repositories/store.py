from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from taskchat.repositories.chat_repository import ChatRepository
from taskchat.repositories.message_repository import MessageRepository
from taskchat.repositories.profile_repository import ProfileRepository


@dataclass
class ChatStore:
    """Repositories plus the change feed their writes publish to."""

    chats: ChatRepository
    messages: MessageRepository
    profiles: ProfileRepository
    bus: object

    @classmethod
    def from_database(cls, db: AsyncIOMotorDatabase, bus) -> "ChatStore":
        return cls(
            chats=ChatRepository(db, bus),
            messages=MessageRepository(db, bus),
            profiles=ProfileRepository(db),
            bus=bus,
        )

    async def ensure_indexes(self) -> None:
        await self.chats.ensure_indexes()
        await self.messages.ensure_indexes()
