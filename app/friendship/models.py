from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from app.profiles.schemas import Profile


friend_requests_sql = """
create table if not exists friend_requests (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

  sender_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
  receiver_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,

  status TEXT NOT NULL DEFAULT 'pending'
    CHECK (status IN ('pending', 'accepted', 'declined')),

  created_at TIMESTAMPTZ DEFAULT now(),
  updated_at TIMESTAMPTZ DEFAULT now(),

  -- A user can't send a request to themselves
  CONSTRAINT prevent_self_request CHECK (sender_id <> receiver_id)
);

-- Only one pending A -> B at a time. Resolved rows don't count, so a request
-- can be sent again after a decline.
CREATE UNIQUE INDEX IF NOT EXISTS idx_unique_pending_requests
ON friend_requests (sender_id, receiver_id)
WHERE status = 'pending';

CREATE INDEX IF NOT EXISTS idx_friend_requests_receiver ON friend_requests (receiver_id, status);
CREATE INDEX IF NOT EXISTS idx_friend_requests_sender ON friend_requests (sender_id, status);

ALTER PUBLICATION supabase_realtime ADD TABLE friend_requests;
"""

friendships_sql = """
CREATE TABLE IF NOT EXISTS friendships (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

    -- one row per direction: (A, B) and (B, A)
    user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    friend_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,

    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    CONSTRAINT unique_friend_pair UNIQUE (user_id, friend_id)
);

CREATE INDEX IF NOT EXISTS idx_friendships_user ON friendships (user_id);

ALTER PUBLICATION supabase_realtime ADD TABLE friendships;
"""

purge_resolved_requests_sql = """
DELETE FROM friend_requests WHERE status IN ('accepted', 'declined');
"""


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class RelationshipStatus(str, Enum):
    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    FRIEND = "friend"


class FriendRequest(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    status: RequestStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


class Friendship(BaseModel):
    id: Optional[str] = None
    user_id: str
    friend_id: str
    created_at: Optional[datetime] = None


class RequestWithProfile(BaseModel):
    """A friend request together with the profile of the other party, if found."""

    request: FriendRequest
    counterpart: Optional[Profile] = None
