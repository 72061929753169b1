import asyncio
import logging
from typing import Set

from app.core.exceptions import AppError
from app.store.base import MESSAGES, Store


logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Unread counters and the bulk "mark conversation read" write."""

    def __init__(self, store: Store):
        self._store = store
        self._background: Set[asyncio.Task] = set()

    async def mark_as_read(self, me: str, counterpart: str) -> int:
        """Flip every unread message from `counterpart` to `me`. Returns rows changed."""
        updated = await self._store.update(
            MESSAGES,
            {"sender_id": counterpart, "receiver_id": me, "is_read": False},
            {"is_read": True},
        )
        logger.info(f"messages_marked_read reader={me} sender={counterpart} rows={len(updated)}")
        return len(updated)

    async def _mark_quietly(self, me: str, counterpart: str) -> None:
        try:
            await self.mark_as_read(me, counterpart)
        except AppError as e:
            logger.warning(f"mark_read_failed reader={me} sender={counterpart} error={e.detail}")

    def mark_as_read_in_background(self, me: str, counterpart: str) -> asyncio.Task:
        """Fire-and-forget variant; failures are logged, the feed shows the result."""
        task = asyncio.create_task(self._mark_quietly(me, counterpart))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background writes still in flight (used on shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def unread_count(self, me: str, counterpart: str) -> int:
        try:
            return await self._store.count(
                MESSAGES, {"sender_id": counterpart, "receiver_id": me, "is_read": False}
            )
        except AppError as e:
            logger.warning(f"unread_count_failed reader={me} sender={counterpart} error={e.detail}")
            return 0

    async def total_unread_count(self, me: str) -> int:
        try:
            return await self._store.count(MESSAGES, {"receiver_id": me, "is_read": False})
        except AppError as e:
            logger.warning(f"total_unread_count_failed reader={me} error={e.detail}")
            return 0
