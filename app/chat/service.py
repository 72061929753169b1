import logging
import os
import time
from contextlib import aclosing
from datetime import datetime
from typing import AsyncIterator, List, Optional

from app.core.exceptions import ValidationError
from app.profiles.service import ProfileService
from app.store.base import MESSAGES, Store
from app.store.feed import ChangeFeed
from .aggregator import ConversationSummary, aggregate_conversations, conversation_messages
from .enrichment import EnrichmentFacade
from .models import Message
from .receipts import ReadReceiptTracker


logger = logging.getLogger(__name__)

DEFAULT_MEDIA_EXTENSION = ".jpg"


class ChatService:
    def __init__(
        self,
        store: Store,
        profiles: ProfileService,
        feed: Optional[ChangeFeed] = None,
        enrichment_timeout: Optional[float] = 5.0,
        media_bucket: str = "chat_media",
    ):
        self._store = store
        self._feed = feed or ChangeFeed(store)
        self._media_bucket = media_bucket
        self.receipts = ReadReceiptTracker(store)
        self.enrichment = EnrichmentFacade(
            profiles, self.receipts.unread_count, timeout=enrichment_timeout
        )

    async def send_message(
        self,
        me: str,
        receiver_id: str,
        text: Optional[str] = None,
        media_url: Optional[str] = None,
    ) -> Message:
        if me == receiver_id:
            raise ValidationError("Cannot send a message to yourself.")
        if not (text and text.strip()) and not media_url:
            raise ValidationError("A message needs text or an attachment.")

        created = await self._store.insert(
            MESSAGES,
            {
                "sender_id": me,
                "receiver_id": receiver_id,
                "message_text": text or "",
                "media_url": media_url,
                "is_read": False,
            },
        )
        logger.info(f"message_sent sender={me} receiver={receiver_id} media={bool(media_url)}")
        return Message(**created[0])

    async def upload_chat_media(
        self, me: str, filename: str, content: bytes, content_type: str
    ) -> str:
        """Store an attachment under `<me>/<millis><ext>` and return its public URL."""
        if not content:
            raise ValidationError("Uploaded file is empty.")
        extension = os.path.splitext(filename or "")[1].lower() or DEFAULT_MEDIA_EXTENSION
        path = f"{me}/{int(time.time() * 1000)}{extension}"
        url = await self._store.upload(self._media_bucket, path, content, content_type)
        logger.info(f"chat_media_uploaded user={me} path={path} bytes={len(content)}")
        return url

    async def _my_messages(self, me: str) -> List[dict]:
        sent = await self._store.select(MESSAGES, {"sender_id": me})
        received = await self._store.select(MESSAGES, {"receiver_id": me})
        return sent + received

    async def list_conversations(
        self, me: str, now: Optional[datetime] = None
    ) -> List[ConversationSummary]:
        """One-shot conversation list, fully enriched."""
        summaries = aggregate_conversations(await self._my_messages(me), me, now)
        return await self.enrichment.enrich_all(me, summaries)

    async def watch_conversations(
        self, me: str, progressive: bool = False
    ) -> AsyncIterator[List[ConversationSummary]]:
        """
        Live conversation list. Each message snapshot is aggregated from
        scratch and enriched; with `progressive` the list is also emitted
        while enrichment is still running.
        """
        async with aclosing(
            self._feed.subscribe(MESSAGES, order_by="created_at", descending=True)
        ) as snapshots:
            async for snapshot in snapshots:
                summaries = aggregate_conversations(snapshot, me)
                if not progressive:
                    yield await self.enrichment.enrich_all(me, summaries)
                    continue
                async with aclosing(
                    self.enrichment.enrich_progressively(me, summaries)
                ) as partials:
                    async for partial in partials:
                        yield partial

    async def get_messages(self, me: str, other: str) -> List[Message]:
        return conversation_messages(await self._my_messages(me), me, other)

    async def watch_messages(self, me: str, other: str) -> AsyncIterator[List[Message]]:
        async with aclosing(
            self._feed.subscribe(MESSAGES, order_by="created_at")
        ) as snapshots:
            async for snapshot in snapshots:
                yield conversation_messages(snapshot, me, other)

    async def open_conversation(self, me: str, other: str) -> List[Message]:
        """Load a conversation and clear its unread badge without waiting on the write."""
        self.receipts.mark_as_read_in_background(me, other)
        return await self.get_messages(me, other)
