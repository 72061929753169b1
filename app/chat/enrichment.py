"""
Completes conversation summaries with the counterpart's profile and the
unread count, looked up concurrently for every conversation.

Each lookup has its own timeout and fallback ("Unknown User", 0), so one slow
or failing lookup never sinks the batch. Leaving early cancels whatever is
still in flight.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

from app.profiles.schemas import UNKNOWN_USER
from app.profiles.service import ProfileService
from .aggregator import ConversationSummary


logger = logging.getLogger(__name__)

T = TypeVar("T")
UnreadCounter = Callable[[str, str], Awaitable[int]]


class EnrichmentFacade:
    def __init__(
        self,
        profiles: ProfileService,
        unread_counter: UnreadCounter,
        timeout: Optional[float] = 5.0,
    ):
        self._profiles = profiles
        self._unread_counter = unread_counter
        self._timeout = timeout

    async def _guarded(self, lookup: Awaitable[T], fallback: T, what: str, counterpart: str) -> T:
        try:
            if self._timeout is None:
                return await lookup
            return await asyncio.wait_for(lookup, self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"enrichment_timeout lookup={what} counterpart={counterpart}")
            return fallback
        except Exception as e:
            logger.warning(f"enrichment_failed lookup={what} counterpart={counterpart} error={e}")
            return fallback

    async def enrich_one(self, me: str, summary: ConversationSummary) -> ConversationSummary:
        counterpart = summary.counterpart_id
        profile, unread = await asyncio.gather(
            self._guarded(self._profiles.get_profile(counterpart), None, "profile", counterpart),
            self._guarded(self._unread_counter(me, counterpart), 0, "unread", counterpart),
        )
        return summary.model_copy(
            update={
                "counterpart_name": profile.display_name if profile else UNKNOWN_USER,
                "counterpart_avatar_url": profile.avatar_url if profile else None,
                "unread_count": unread,
            }
        )

    async def enrich_all(
        self, me: str, summaries: List[ConversationSummary]
    ) -> List[ConversationSummary]:
        """Enrich every summary and return only when all of them are done. Order is kept."""
        tasks = [asyncio.create_task(self.enrich_one(me, s)) for s in summaries]
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def enrich_progressively(
        self, me: str, summaries: List[ConversationSummary]
    ) -> AsyncIterator[List[ConversationSummary]]:
        """
        Yield the list with placeholders straight away, then again each time
        more conversations finish enriching. The last yield is fully enriched.
        """
        current = list(summaries)
        yield list(current)
        if not current:
            return

        positions: Dict[asyncio.Task, int] = {
            asyncio.create_task(self.enrich_one(me, s)): index
            for index, s in enumerate(current)
        }
        pending = set(positions)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    current[positions[task]] = task.result()
                yield list(current)
        finally:
            for task in pending:
                task.cancel()
