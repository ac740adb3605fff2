from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from taskchat.config import Settings, get_settings
from taskchat.database.connection import mongo_db_dependency
from taskchat.repositories.store import ChatStore
from taskchat.services.chat_service import ChatService
from taskchat.utils.realtime_bus import get_bus


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    # identity is established by the auth gateway in front of this service
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")
    return x_user_id


async def get_store(db=Depends(mongo_db_dependency)) -> ChatStore:
    return ChatStore.from_database(db, await get_bus())


def get_chat_service(store: ChatStore = Depends(get_store), settings: Settings = Depends(get_settings)) -> ChatService:
    return ChatService(store, settings.unknown_user_name)
