from typing import Optional, TypedDict


class ProfileDocument(TypedDict, total=False):

    _id: str
    username: str
    avatar_url: Optional[str]
