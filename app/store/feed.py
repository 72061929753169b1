"""
Full-snapshot change feed.

Every emission is the complete current row set of the subscribed table(s).
Consumers rebuild whatever they derive from it from scratch. Changes that
land while a consumer is still busy with the previous snapshot are coalesced
into a single fresh snapshot.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Sequence

from .base import Row, Store


logger = logging.getLogger(__name__)


class ChangeFeed:
    def __init__(self, store: Store):
        self._store = store

    async def subscribe(
        self, table: str, order_by: str = "created_at", descending: bool = False
    ) -> AsyncIterator[List[Row]]:
        async for snapshots in self.subscribe_tables([table], order_by, descending):
            yield snapshots[table]

    async def subscribe_tables(
        self,
        tables: Sequence[str],
        order_by: str = "created_at",
        descending: bool = False,
    ) -> AsyncIterator[Dict[str, List[Row]]]:
        """
        Emit `{table: snapshot}` for all `tables` whenever any of them changes.

        The first emission is the live state at subscription time. Never ends on
        its own; close the generator (or cancel its task) to unsubscribe.
        """
        changed = asyncio.Event()
        changed.set()

        unsubscribers = []
        try:
            for table in tables:
                unsubscribers.append(await self._store.listen(table, changed.set))
            logger.debug(f"feed_subscribed tables={','.join(tables)}")

            while True:
                await changed.wait()
                # cleared before reading so a write during the read triggers a new emission
                changed.clear()
                snapshots = {}
                for table in tables:
                    snapshots[table] = await self._store.select(
                        table, order_by=order_by, descending=descending
                    )
                yield snapshots
        finally:
            for unsubscribe in unsubscribers:
                try:
                    await unsubscribe()
                except Exception:
                    logger.exception("feed_unsubscribe_failed")
            logger.debug(f"feed_closed tables={','.join(tables)}")
