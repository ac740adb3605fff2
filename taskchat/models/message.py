from datetime import datetime
from typing import Optional, TypedDict


class AttachmentDocument(TypedDict, total=False):
    name: str
    type: str
    size: int
    # location reference resolved by the object store
    url: str


class MessageDocument(TypedDict, total=False):
    _id: str
    chat_id: str
    sender_id: str
    receiver_id: str
    content: Optional[str]
    attachment: Optional[AttachmentDocument]
    timestamp: datetime
    # false -> true only
    read: bool
