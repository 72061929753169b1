"""
Projection of a message snapshot into one summary per counterpart.

Pure functions: the caller passes the full snapshot on every feed emission
and gets a freshly built list back. Ordering is always explicit, by
`(created_at, id)`, so equal timestamps resolve the same way every time.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

from app.profiles.schemas import UNKNOWN_USER
from app.utils.time_format import age_label
from .models import Message


class ConversationSummary(BaseModel):
    counterpart_id: str
    counterpart_name: str = UNKNOWN_USER
    counterpart_avatar_url: Optional[str] = None
    last_message: Message
    unread_count: int = 0
    age_label: str


def recency_key(message: Message) -> Tuple[datetime, str]:
    return (message.created_at, message.id)


def _as_messages(rows: Iterable[Union[Message, dict]]) -> List[Message]:
    return [row if isinstance(row, Message) else Message(**row) for row in rows]


def aggregate_conversations(
    rows: Iterable[Union[Message, dict]], me: str, now: Optional[datetime] = None
) -> List[ConversationSummary]:
    """
    Group the messages `me` sent or received by counterpart, keep the most
    recent one per counterpart, newest conversation first.

    `unread_count` is left at 0; it is filled in by enrichment from its own query.
    """
    latest: Dict[str, Message] = {}
    for message in _as_messages(rows):
        if not message.involves(me):
            continue
        counterpart = message.counterpart_of(me)
        current = latest.get(counterpart)
        if current is None or recency_key(message) > recency_key(current):
            latest[counterpart] = message

    ordered = sorted(latest.items(), key=lambda item: recency_key(item[1]), reverse=True)
    return [
        ConversationSummary(
            counterpart_id=counterpart,
            last_message=message,
            age_label=age_label(message.created_at, now),
        )
        for counterpart, message in ordered
    ]


def conversation_messages(
    rows: Iterable[Union[Message, dict]], me: str, other: str
) -> List[Message]:
    """Messages between `me` and `other`, oldest first."""
    messages = [
        m
        for m in _as_messages(rows)
        if (m.sender_id == me and m.receiver_id == other)
        or (m.sender_id == other and m.receiver_id == me)
    ]
    return sorted(messages, key=recency_key)
