import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple, Union

import httpx
from supabase import AsyncClient, PostgrestAPIError, StorageException

from app.core.exceptions import ConflictError, StoreError, ValidationError
from .base import ChangeCallback, Filters, Row, Store, Unsubscribe


logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"
FOREIGN_KEY_VIOLATION = "23503"


def _value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _with_filters(query, filters: Optional[Filters]):
    for column, value in (filters or {}).items():
        query = query.eq(column, _value(value))
    return query


class SupabaseStore(Store):
    """`Store` over the Supabase async client: PostgREST, Realtime and Storage."""

    def __init__(self, client: AsyncClient):
        self._client = client

    async def _execute(self, query, action: str):
        try:
            return await query.execute()
        except PostgrestAPIError as e:
            logger.warning(f"supabase_error action={action} code={e.code} message={e.message}")
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(f"Duplicate row while {action}.")
            if e.code in (CHECK_VIOLATION, FOREIGN_KEY_VIOLATION):
                raise ValidationError(f"Invalid data while {action}.")
            raise StoreError(f"Database error while {action}.")
        except httpx.HTTPError as e:
            logger.warning(f"supabase_transport_error action={action} error={e}")
            raise StoreError(f"Database unreachable while {action}.")

    async def listen(self, table: str, callback: ChangeCallback) -> Unsubscribe:
        channel = self._client.channel(f"{table}-feed-{uuid.uuid4().hex[:8]}")

        def on_change(payload):
            callback()

        channel.on_postgres_changes("*", schema="public", table=table, callback=on_change)
        await channel.subscribe()
        logger.debug(f"realtime_subscribed table={table}")

        async def unsubscribe() -> None:
            await self._client.remove_channel(channel)
            logger.debug(f"realtime_unsubscribed table={table}")

        return unsubscribe

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
        query = _with_filters(self._client.table(table).select("*"), filters)

        for column, value in (neq or {}).items():
            query = query.neq(column, _value(value))
        if in_ is not None:
            column, values = in_
            query = query.in_(column, [_value(v) for v in values])
        if ilike_any is not None:
            columns, term = ilike_any
            query = query.or_(",".join(f"{column}.ilike.%{term}%" for column in columns))
        if order_by:
            query = query.order(order_by, desc=descending).order("id", desc=descending)
        if limit is not None:
            query = query.limit(limit)

        response = await self._execute(query, f"reading {table}")
        return response.data or []

    async def count(self, table: str, filters: Optional[Filters] = None) -> int:
        query = _with_filters(
            self._client.table(table).select("id", count="exact", head=True), filters
        )
        response = await self._execute(query, f"counting {table}")
        return response.count or 0

    async def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        payload = (
            {k: _value(v) for k, v in rows.items()}
            if isinstance(rows, dict)
            else [{k: _value(v) for k, v in row.items()} for row in rows]
        )
        response = await self._execute(
            self._client.table(table).insert(payload), f"inserting into {table}"
        )
        return response.data or []

    async def upsert(
        self,
        table: str,
        rows: List[Row],
        on_conflict: str,
        ignore_duplicates: bool = True,
    ) -> List[Row]:
        payload = [{k: _value(v) for k, v in row.items()} for row in rows]
        response = await self._execute(
            self._client.table(table).upsert(
                payload, on_conflict=on_conflict, ignore_duplicates=ignore_duplicates
            ),
            f"upserting into {table}",
        )
        return response.data or []

    async def update(self, table: str, filters: Filters, patch: Row) -> List[Row]:
        query = _with_filters(
            self._client.table(table).update({k: _value(v) for k, v in patch.items()}),
            filters,
        )
        response = await self._execute(query, f"updating {table}")
        return response.data or []

    async def delete(self, table: str, filters: Filters) -> List[Row]:
        query = _with_filters(self._client.table(table).delete(), filters)
        response = await self._execute(query, f"deleting from {table}")
        return response.data or []

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> str:
        storage = self._client.storage.from_(bucket)
        try:
            await storage.upload(
                path,
                content,
                file_options={"content-type": content_type, "upsert": "true"},
            )
            return await storage.get_public_url(path)
        except StorageException as e:
            logger.warning(f"storage_error bucket={bucket} path={path} error={e}")
            raise StoreError("Storage error while uploading file.")

    async def close(self) -> None:
        await self._client.remove_all_channels()
