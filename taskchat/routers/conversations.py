from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from taskchat.schemas.chat import StartConversation
from taskchat.schemas.message import SendMessageRequest, SendMessageResult
from taskchat.services.chat_service import ChatService
from taskchat.utils.dependencies import get_chat_service, get_current_user_id


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(q: Optional[str] = Query(None, max_length=100), user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(user_id, q)
    return {"items": [c.model_dump(mode="json") for c in items]}


@router.post("")
async def start_conversation(body: StartConversation, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    try:
        conversation = await service.start_conversation(user_id, body.participant_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return conversation.model_dump(mode="json")


@router.get("/{chat_id}/messages")
async def list_messages(chat_id: str, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    try:
        messages = await service.get_feed(user_id, chat_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"items": [m.model_dump(mode="json") for m in messages]}


@router.post("/{chat_id}/messages")
async def send_message(chat_id: str, body: SendMessageRequest, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    try:
        saved = await service.send_message(user_id, chat_id, body.content, body.attachment)
    except LookupError:
        raise HTTPException(status_code=404, detail="Chat not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SendMessageResult(sent=saved is not None, message=saved).model_dump(mode="json")


@router.post("/{chat_id}/read")
async def mark_read(chat_id: str, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    try:
        count = await service.mark_read(user_id, chat_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"updated": count}
