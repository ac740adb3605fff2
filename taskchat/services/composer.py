import logging
import mimetypes
from typing import Optional

from taskchat.models.message import MessageDocument
from taskchat.repositories.message_repository import MessageRepository
from taskchat.schemas.chat import Conversation
from taskchat.schemas.message import Attachment, MessageRow


logger = logging.getLogger(__name__)

# same set the file picker offers: image/*,.pdf,.doc,.docx
ACCEPTED_EXTENSIONS = (".pdf", ".doc", ".docx")
ACCEPTED_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


def is_accepted_attachment(attachment: Attachment) -> bool:
    media_type = attachment.type or mimetypes.guess_type(attachment.name)[0] or ""
    if media_type.startswith("image/") or media_type in ACCEPTED_TYPES:
        return True
    return attachment.name.lower().endswith(ACCEPTED_EXTENSIONS)


class Composer:

    def __init__(self, messages: MessageRepository, viewer_id: str) -> None:
        self._messages = messages
        self._viewer_id = viewer_id

    def build(self, conversation: Conversation, content: Optional[str], attachment: Optional[Attachment] = None) -> Optional[MessageDocument]:
        has_text = bool(content and content.strip())
        if not has_text and attachment is None:
            return None
        if attachment is not None and not is_accepted_attachment(attachment):
            raise ValueError(f"Unsupported attachment type: {attachment.type or attachment.name}")
        return {
            "chat_id": conversation.id,
            "sender_id": self._viewer_id,
            "receiver_id": conversation.participant_id,
            "content": content if has_text else None,
            "attachment": attachment.model_dump() if attachment else None,
            "read": False,
        }

    async def submit(self, conversation: Conversation, content: Optional[str], attachment: Optional[Attachment] = None) -> Optional[MessageRow]:
        payload = self.build(conversation, content, attachment)
        if payload is None:
            return None
        saved = await self._messages.insert(payload)
        logger.debug("Sent message %s in chat %s", saved.id, conversation.id)
        return saved
