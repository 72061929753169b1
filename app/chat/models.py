from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


messages_sql = """
CREATE TABLE IF NOT EXISTS messages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

    sender_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    receiver_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,

    message_text TEXT NOT NULL DEFAULT '',
    media_url TEXT,

    -- flips false -> true once, never back
    is_read BOOLEAN NOT NULL DEFAULT FALSE,

    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

-- unread badge lookups: sender_id = them AND receiver_id = me AND NOT is_read
CREATE INDEX IF NOT EXISTS idx_messages_unread
ON messages (receiver_id, sender_id)
WHERE is_read = FALSE;

ALTER PUBLICATION supabase_realtime ADD TABLE messages;
"""

chat_media_bucket_sql = """
INSERT INTO storage.buckets (id, name, public)
VALUES ('chat_media', 'chat_media', true)
ON CONFLICT (id) DO NOTHING;
"""


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    sender_id: str
    receiver_id: str
    # stored as `message_text`
    text: str = Field(default="", validation_alias=AliasChoices("message_text", "text"))
    media_url: Optional[str] = None
    created_at: datetime
    is_read: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def none_text_is_empty(cls, text):
        return text or ""

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, created_at: datetime) -> datetime:
        if created_at.tzinfo is None:
            return created_at.replace(tzinfo=timezone.utc)
        return created_at

    def counterpart_of(self, me: str) -> str:
        return self.receiver_id if self.sender_id == me else self.sender_id

    def involves(self, me: str) -> bool:
        return me in (self.sender_id, self.receiver_id)
