from pydantic import BaseModel, model_validator
from uuid import UUID
from typing import List, Optional

from .aggregator import ConversationSummary
from .models import Message


# Send Messages
class SendMessageModel(BaseModel):
    receiver_id: UUID
    text: Optional[str] = None
    media_url: Optional[str] = None

    @model_validator(mode="after")
    def require_content(self):
        if not (self.text and self.text.strip()) and not self.media_url:
            raise ValueError("A message needs text or a media_url.")
        return self


class SendMessageResponseModel(BaseModel):
    message: Message


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[Message]


class MarkReadResponseModel(BaseModel):
    marked_read: int


# Get Conversations
class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationSummary]


class UnreadCountResponseModel(BaseModel):
    unread_count: int


# Media
class UploadMediaResponseModel(BaseModel):
    media_url: str
