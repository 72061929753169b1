from typing import Optional

from pydantic import BaseModel, ConfigDict


UNKNOWN_USER = "Unknown User"


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or UNKNOWN_USER
