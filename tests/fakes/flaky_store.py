"""
MemoryStore with call tracking and injectable failures/delays.

Usage:
    store = FlakyStore()
    store.fail("count", table="messages")          # every unread count fails
    store.fail("upsert", times=1)                   # only the next upsert fails
    store.delay("select", 0.5, table="profiles")    # slow profile lookups

    assert store.call_count("update", table="friend_requests") == 1
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from app.core.exceptions import AppError, StoreError
from app.store.memory import MemoryStore


@dataclass
class CallRecord:
    """Record of a store call for verification."""
    method: str
    table: str
    args: Tuple[Any, ...]


@dataclass
class Failure:
    error: AppError
    times: Optional[int]


class FlakyStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self._calls: List[CallRecord] = []
        self._failures: Dict[Tuple[str, Optional[str]], Failure] = {}
        self._delays: Dict[Tuple[str, Optional[str]], float] = {}

    # =========================================================================
    # Test Setup Methods
    # =========================================================================

    def fail(
        self,
        method: str,
        error: Optional[AppError] = None,
        table: Optional[str] = None,
        times: Optional[int] = None,
    ) -> None:
        """Make `method` raise `error` (on `table`, or on every table), `times` times or forever."""
        self._failures[(method, table)] = Failure(
            error or StoreError(f"Injected {method} failure."), times
        )

    def delay(self, method: str, seconds: float, table: Optional[str] = None) -> None:
        self._delays[(method, table)] = seconds

    def heal(self) -> None:
        self._failures.clear()
        self._delays.clear()

    # =========================================================================
    # Verification
    # =========================================================================

    def call_count(self, method: str, table: Optional[str] = None) -> int:
        return sum(
            1
            for call in self._calls
            if call.method == method and (table is None or call.table == table)
        )

    def was_called(self, method: str, table: Optional[str] = None) -> bool:
        return self.call_count(method, table) > 0

    # =========================================================================
    # Interception
    # =========================================================================

    async def _before(self, method: str, table: str, *args: Any) -> None:
        self._calls.append(CallRecord(method, table, args))

        seconds = self._delays.get((method, table), self._delays.get((method, None)))
        if seconds:
            await asyncio.sleep(seconds)

        for key in ((method, table), (method, None)):
            failure = self._failures.get(key)
            if failure is None:
                continue
            if failure.times is not None:
                failure.times -= 1
                if failure.times <= 0:
                    del self._failures[key]
            raise failure.error

    async def select(self, table, filters=None, **kwargs):
        await self._before("select", table, filters)
        return await super().select(table, filters, **kwargs)

    async def count(self, table, filters=None):
        await self._before("count", table, filters)
        return await super().count(table, filters)

    async def insert(self, table, rows):
        await self._before("insert", table, rows)
        return await super().insert(table, rows)

    async def upsert(self, table, rows, on_conflict, ignore_duplicates=True):
        await self._before("upsert", table, rows)
        return await super().upsert(table, rows, on_conflict, ignore_duplicates)

    async def update(self, table, filters, patch):
        await self._before("update", table, filters, patch)
        return await super().update(table, filters, patch)

    async def delete(self, table, filters):
        await self._before("delete", table, filters)
        return await super().delete(table, filters)

    async def upload(self, bucket, path, content, content_type):
        await self._before("upload", bucket, path)
        return await super().upload(bucket, path, content, content_type)
