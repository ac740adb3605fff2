import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from taskchat.config import Settings, get_settings
from taskchat.repositories.store import ChatStore
from taskchat.schemas.message import Attachment
from taskchat.services.chat_session import ChatSession
from taskchat.utils.dependencies import get_store


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


async def _handle_frame(session: ChatSession, websocket: WebSocket, msg: Dict[str, Any]) -> None:
    # Expect {"type": "select", "chat_id"} or {"type": "send", "content", "attachment"?}
    kind = msg.get("type")
    if kind == "select":
        chat_id = msg.get("chat_id")
        if not chat_id or not await session.select_conversation(str(chat_id)):
            await websocket.send_json({"type": "error", "title": "Error", "description": "Chat not found"})
        return

    if kind == "send":
        try:
            attachment = Attachment.model_validate(msg["attachment"]) if msg.get("attachment") else None
            await session.send_message(msg.get("content"), attachment)
        except (ValidationError, ValueError) as exc:
            await websocket.send_json({"type": "error", "title": "Invalid message", "description": str(exc)})
        return

    await websocket.send_json({"type": "error", "title": "Invalid frame", "description": f"Unknown frame type {kind!r}"})


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, store: ChatStore = Depends(get_store), settings: Settings = Depends(get_settings)):
    user_id = websocket.query_params.get("user_id")
    if not user_id:
        await websocket.close(code=4401)
        return
    await websocket.accept()

    async def push_snapshot(session: ChatSession) -> None:
        await websocket.send_json({"type": "snapshot", **session.snapshot()})

    async def push_error(title: str, description: str) -> None:
        await websocket.send_json({"type": "error", "title": title, "description": description})

    async with ChatSession(user_id, store, settings=settings, on_update=push_snapshot, on_error=push_error) as session:
        await session.open(websocket.query_params.get("chat_id"))
        if not session.conversations:
            await push_snapshot(session)
        try:
            while True:
                msg = await websocket.receive_json()
                if not isinstance(msg, dict):
                    await push_error("Invalid frame", "Expected a JSON object")
                    continue
                await _handle_frame(session, websocket, msg)
        except WebSocketDisconnect:
            logger.info("Chat socket for %s disconnected", user_id)
