"""
Store contract shared by the Supabase-backed store and the in-memory store.

Services receive a `Store` instance and never reach for a global client. Rows
travel as plain dicts, exactly as PostgREST returns them.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union


MESSAGES = "messages"
FRIEND_REQUESTS = "friend_requests"
FRIENDSHIPS = "friendships"
PROFILES = "profiles"

Row = Dict[str, Any]
Filters = Dict[str, Any]
ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], Awaitable[None]]


class Store(ABC):
    """Filtered queries, writes and a per-table change notification hook."""

    @abstractmethod
    async def listen(self, table: str, callback: ChangeCallback) -> Unsubscribe:
        """
        Call `callback()` after every insert/update/delete on `table`.

        Returns an async function that removes the listener.
        """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        neq: Optional[Filters] = None,
        in_: Optional[Tuple[str, Sequence[Any]]] = None,
        ilike_any: Optional[Tuple[Sequence[str], str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """
        Equality filters are AND-ed. `ilike_any=(columns, term)` matches rows
        where any of `columns` contains `term`, case-insensitively.
        """

    @abstractmethod
    async def count(self, table: str, filters: Optional[Filters] = None) -> int:
        ...

    @abstractmethod
    async def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        ...

    @abstractmethod
    async def upsert(
        self,
        table: str,
        rows: List[Row],
        on_conflict: str,
        ignore_duplicates: bool = True,
    ) -> List[Row]:
        """`on_conflict` is a comma separated column list, as in PostgREST."""

    @abstractmethod
    async def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        """Returns the rows that were actually changed."""

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> List[Row]:
        """Returns the rows that were actually deleted. Deleting nothing is fine."""

    @abstractmethod
    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> str:
        """Store `content` and return its public URL."""

    async def close(self) -> None:
        return None


def ordered(rows: Iterable[Row], order_by: Optional[str], descending: bool = False) -> List[Row]:
    """Sort rows by `order_by`, then by id, so equal keys come out in a stable order."""
    rows = list(rows)
    if not order_by:
        return rows
    return sorted(
        rows,
        key=lambda row: (str(row.get(order_by) or ""), str(row.get("id") or "")),
        reverse=descending,
    )
