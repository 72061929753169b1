"""
In-memory `Store` used for local runs (STORE_BACKEND=memory) and tests.

It emulates the parts of the Postgres schema the services rely on: column
defaults, the partial unique index on pending friend requests, the
friendship pair uniqueness, the self-request check, and a change
notification after every committed write.
"""

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from app.core.exceptions import ConflictError, ValidationError
from .base import (
    FRIEND_REQUESTS,
    FRIENDSHIPS,
    MESSAGES,
    ChangeCallback,
    Filters,
    Row,
    Store,
    Unsubscribe,
    ordered,
)


logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _default_columns(table: str) -> Dict[str, Callable[[], Any]]:
    defaults: Dict[str, Callable[[], Any]] = {
        "id": lambda: str(uuid.uuid4()),
        "created_at": utc_now_iso,
    }
    if table == MESSAGES:
        defaults["is_read"] = lambda: False
        defaults["media_url"] = lambda: None
    elif table == FRIEND_REQUESTS:
        defaults["status"] = lambda: "pending"
        defaults["updated_at"] = utc_now_iso
    return defaults


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == _normalize(value) for column, value in filters.items())


class MemoryStore(Store):
    def __init__(self, public_url_base: str = "memory://storage"):
        self._tables: Dict[str, List[Row]] = {}
        self._listeners: Dict[str, List[ChangeCallback]] = {}
        self._objects: Dict[Tuple[str, str], bytes] = {}
        self._lock = asyncio.Lock()
        self._public_url_base = public_url_base

    # -- helpers for tests and local seeding -----------------------------------

    def seed(self, table: str, rows: List[Row]) -> List[Row]:
        """Load rows without constraint checks or notifications."""
        seeded = [self._with_defaults(table, row) for row in rows]
        self._tables.setdefault(table, []).extend(seeded)
        return copy.deepcopy(seeded)

    def rows(self, table: str) -> List[Row]:
        return copy.deepcopy(self._tables.get(table, []))

    def listener_count(self, table: str) -> int:
        return len(self._listeners.get(table, []))

    def object(self, bucket: str, path: str) -> Optional[bytes]:
        return self._objects.get((bucket, path))

    # -- change notifications ---------------------------------------------------

    async def listen(self, table: str, callback: ChangeCallback) -> Unsubscribe:
        self._listeners.setdefault(table, []).append(callback)

        async def unsubscribe() -> None:
            listeners = self._listeners.get(table, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def _notify(self, table: str) -> None:
        for callback in list(self._listeners.get(table, [])):
            try:
                callback()
            except Exception:
                logger.exception(f"change_listener_failed table={table}")

    # -- constraints --------------------------------------------------------------

    def _check_constraints(self, table: str, candidate: Row, existing: List[Row]) -> None:
        if table == FRIEND_REQUESTS:
            if candidate.get("sender_id") == candidate.get("receiver_id"):
                raise ValidationError("Cannot send friend request to yourself.")
            if candidate.get("status") == "pending":
                for row in existing:
                    if (
                        row is not candidate
                        and row.get("status") == "pending"
                        and row.get("sender_id") == candidate.get("sender_id")
                        and row.get("receiver_id") == candidate.get("receiver_id")
                    ):
                        raise ConflictError("Friend request already sent.")
        elif table == FRIENDSHIPS:
            for row in existing:
                if (
                    row is not candidate
                    and row.get("user_id") == candidate.get("user_id")
                    and row.get("friend_id") == candidate.get("friend_id")
                ):
                    raise ConflictError("Already friends with this user.")

    def _with_defaults(self, table: str, row: Row) -> Row:
        new_row = {column: _normalize(value) for column, value in row.items()}
        for column, factory in _default_columns(table).items():
            if new_row.get(column) is None:
                new_row[column] = factory()
        return new_row

    # -- reads --------------------------------------------------------------------

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
        rows = [row for row in self._tables.get(table, []) if _matches(row, filters)]

        if neq:
            rows = [
                row
                for row in rows
                if all(row.get(column) != _normalize(value) for column, value in neq.items())
            ]
        if in_ is not None:
            column, values = in_
            wanted = {_normalize(value) for value in values}
            rows = [row for row in rows if row.get(column) in wanted]
        if ilike_any is not None:
            columns, term = ilike_any
            needle = term.lower()
            rows = [
                row
                for row in rows
                if any(needle in str(row.get(column) or "").lower() for column in columns)
            ]

        rows = ordered(rows, order_by, descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def count(self, table: str, filters: Optional[Filters] = None) -> int:
        return sum(1 for row in self._tables.get(table, []) if _matches(row, filters))

    # -- writes -------------------------------------------------------------------

    async def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        batch = [rows] if isinstance(rows, dict) else list(rows)
        async with self._lock:
            existing = self._tables.setdefault(table, [])
            staged: List[Row] = []
            # all-or-nothing, like a single INSERT statement
            for row in batch:
                new_row = self._with_defaults(table, row)
                self._check_constraints(table, new_row, existing + staged)
                staged.append(new_row)
            existing.extend(staged)
        if staged:
            self._notify(table)
        return copy.deepcopy(staged)

    async def upsert(
        self,
        table: str,
        rows: List[Row],
        on_conflict: str,
        ignore_duplicates: bool = True,
    ) -> List[Row]:
        key_columns = [column.strip() for column in on_conflict.split(",")]
        written: List[Row] = []
        async with self._lock:
            existing = self._tables.setdefault(table, [])
            for row in rows:
                key = {column: _normalize(row.get(column)) for column in key_columns}
                current = next((r for r in existing if _matches(r, key)), None)
                if current is None:
                    new_row = self._with_defaults(table, row)
                    self._check_constraints(table, new_row, existing)
                    existing.append(new_row)
                    written.append(new_row)
                elif not ignore_duplicates:
                    current.update({c: _normalize(v) for c, v in row.items()})
                    written.append(current)
        if written:
            self._notify(table)
        return copy.deepcopy(written)

    async def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        changes = {column: _normalize(value) for column, value in patch.items()}
        async with self._lock:
            existing = self._tables.get(table, [])
            targets = [row for row in existing if _matches(row, filters)]
            for row in targets:
                candidate = {**row, **changes}
                self._check_constraints(table, candidate, [r for r in existing if r is not row])
            for row in targets:
                row.update(changes)
        if targets:
            self._notify(table)
        return copy.deepcopy(targets)

    async def delete(self, table: str, filters: Filters) -> List[Row]:
        async with self._lock:
            existing = self._tables.get(table, [])
            removed = [row for row in existing if _matches(row, filters)]
            self._tables[table] = [row for row in existing if not _matches(row, filters)]
        if removed:
            self._notify(table)
        return copy.deepcopy(removed)

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> str:
        self._objects[(bucket, path)] = bytes(content)
        return f"{self._public_url_base}/{bucket}/{path}"
