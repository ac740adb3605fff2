import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from taskchat.config import settings


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> None:
    global _client, _db
    # tz_aware so timestamps compare against datetime.now(timezone.utc)
    _client = AsyncIOMotorClient(settings.mongo_url, tz_aware=True)
    _db = _client[settings.mongo_db]
    logger.info("Connected to MongoDB database %s", settings.mongo_db)


async def close_mongo_connection() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("Closed MongoDB connection")
    _client = None
    _db = None


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("MongoDB is not connected")
    return _db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
