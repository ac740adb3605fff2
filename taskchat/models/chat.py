from datetime import datetime
from typing import TypedDict


class ChatDocument(TypedDict, total=False):
    _id: str
    # exactly two participants, stored in creation order
    user1_id: str
    user2_id: str
    created_at: datetime
