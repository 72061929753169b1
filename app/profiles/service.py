import logging
from typing import List, Optional, Sequence

from app.core.exceptions import READ_ERRORS
from app.store.base import PROFILES, Store
from .schemas import Profile


logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ("full_name", "title")


class ProfileService:
    """Read-only access to user profiles. Every lookup degrades instead of raising."""

    def __init__(self, store: Store):
        self._store = store

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            rows = await self._store.select(PROFILES, {"id": user_id}, limit=1)
            return Profile(**rows[0]) if rows else None
        except READ_ERRORS as e:
            logger.warning(f"profile_lookup_failed user_id={user_id} error={e}")
            return None

    async def get_profiles(self, user_ids: Sequence[str]) -> List[Profile]:
        if not user_ids:
            return []
        try:
            rows = await self._store.select(PROFILES, in_=("id", list(user_ids)))
            return [Profile(**row) for row in rows]
        except READ_ERRORS as e:
            logger.warning(f"profiles_lookup_failed count={len(user_ids)} error={e}")
            return []

    async def search_users(self, me: str, query: str) -> List[Profile]:
        """
        Profiles whose full name or title contains `query` (case-insensitive),
        never including `me`. An empty query lists everyone else.
        """
        term = query.strip()
        try:
            rows = await self._store.select(
                PROFILES,
                neq={"id": me},
                ilike_any=(SEARCH_COLUMNS, term) if term else None,
                order_by="full_name",
            )
            return [Profile(**row) for row in rows]
        except READ_ERRORS as e:
            logger.warning(f"profile_search_failed query={term!r} error={e}")
            return []

