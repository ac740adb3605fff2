from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileRow(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    username: Optional[str] = None
    avatar_url: Optional[str] = None
