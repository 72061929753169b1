"""
Friendship lifecycle: status derivation and request/friendship transitions.

Status is derived from two independent tables (pending friend requests and
directional friendship rows) in a fixed priority order. Writes go straight to
the store; nothing is cached here, views pick changes up from the feed.
"""

import logging
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional

from app.core.exceptions import (
    READ_ERRORS,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.profiles.schemas import Profile
from app.profiles.service import ProfileService
from app.store.base import FRIEND_REQUESTS, FRIENDSHIPS, Row, Store
from app.store.feed import ChangeFeed
from .models import (
    FriendRequest,
    Friendship,
    RelationshipStatus,
    RequestStatus,
    RequestWithProfile,
)


logger = logging.getLogger(__name__)

FRIENDSHIP_KEY = "user_id,friend_id"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def derive_status(
    me: str, other: str, requests: Iterable[Row], friendships: Iterable[Row]
) -> RelationshipStatus:
    """Relationship of `me` to `other` computed from two table snapshots."""
    if any(f["user_id"] == me and f["friend_id"] == other for f in friendships):
        return RelationshipStatus.FRIEND

    pending = [r for r in requests if r["status"] == RequestStatus.PENDING.value]
    if any(r["sender_id"] == me and r["receiver_id"] == other for r in pending):
        return RelationshipStatus.PENDING_SENT
    if any(r["sender_id"] == other and r["receiver_id"] == me for r in pending):
        return RelationshipStatus.PENDING_RECEIVED

    return RelationshipStatus.NONE


class RelationshipService:
    def __init__(self, store: Store, profiles: ProfileService, feed: Optional[ChangeFeed] = None):
        self._store = store
        self._profiles = profiles
        self._feed = feed or ChangeFeed(store)

    # -- reads ------------------------------------------------------------------

    async def _pending_request(self, sender_id: str, receiver_id: str) -> Optional[FriendRequest]:
        rows = await self._store.select(
            FRIEND_REQUESTS,
            {
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "status": RequestStatus.PENDING.value,
            },
            limit=1,
        )
        return FriendRequest(**rows[0]) if rows else None

    async def _are_friends(self, me: str, other: str) -> bool:
        rows = await self._store.select(FRIENDSHIPS, {"user_id": me, "friend_id": other}, limit=1)
        return bool(rows)

    async def relationship_status(self, me: str, other: str) -> RelationshipStatus:
        try:
            if await self._are_friends(me, other):
                return RelationshipStatus.FRIEND
            if await self._pending_request(me, other):
                return RelationshipStatus.PENDING_SENT
            if await self._pending_request(other, me):
                return RelationshipStatus.PENDING_RECEIVED
            return RelationshipStatus.NONE
        except READ_ERRORS as e:
            logger.warning(f"status_check_failed me={me} other={other} error={e}")
            return RelationshipStatus.NONE

    async def watch_status(self, me: str, other: str) -> AsyncIterator[RelationshipStatus]:
        """Re-derive the status on every change to requests or friendships."""
        async with aclosing(
            self._feed.subscribe_tables([FRIEND_REQUESTS, FRIENDSHIPS])
        ) as snapshots:
            async for tables in snapshots:
                yield derive_status(me, other, tables[FRIEND_REQUESTS], tables[FRIENDSHIPS])

    async def _with_profiles(
        self, requests: List[FriendRequest], counterpart_of
    ) -> List[RequestWithProfile]:
        profiles = await self._profiles.get_profiles([counterpart_of(r) for r in requests])
        by_id: Dict[str, Profile] = {p.id: p for p in profiles}
        return [
            RequestWithProfile(request=r, counterpart=by_id.get(counterpart_of(r)))
            for r in requests
        ]

    async def list_incoming_requests(self, me: str) -> List[RequestWithProfile]:
        try:
            rows = await self._store.select(
                FRIEND_REQUESTS,
                {"receiver_id": me, "status": RequestStatus.PENDING.value},
                order_by="created_at",
                descending=True,
            )
            requests = [FriendRequest(**row) for row in rows]
        except READ_ERRORS as e:
            logger.warning(f"incoming_requests_failed me={me} error={e}")
            return []
        return await self._with_profiles(requests, lambda r: r.sender_id)

    async def list_outgoing_requests(self, me: str) -> List[RequestWithProfile]:
        try:
            rows = await self._store.select(
                FRIEND_REQUESTS,
                {"sender_id": me, "status": RequestStatus.PENDING.value},
                order_by="created_at",
                descending=True,
            )
            requests = [FriendRequest(**row) for row in rows]
        except READ_ERRORS as e:
            logger.warning(f"outgoing_requests_failed me={me} error={e}")
            return []
        return await self._with_profiles(requests, lambda r: r.receiver_id)

    async def pending_requests_count(self, me: str) -> int:
        try:
            return await self._store.count(
                FRIEND_REQUESTS, {"receiver_id": me, "status": RequestStatus.PENDING.value}
            )
        except READ_ERRORS as e:
            logger.warning(f"pending_count_failed me={me} error={e}")
            return 0

    async def list_friends(self, me: str) -> List[Profile]:
        try:
            rows = await self._store.select(
                FRIENDSHIPS, {"user_id": me}, order_by="created_at", descending=True
            )
        except READ_ERRORS as e:
            logger.warning(f"friends_list_failed me={me} error={e}")
            return []
        friend_ids = [row["friend_id"] for row in rows]
        by_id = {p.id: p for p in await self._profiles.get_profiles(friend_ids)}
        return [by_id.get(friend_id) or Profile(id=friend_id) for friend_id in friend_ids]

    async def friend_count(self, me: str) -> int:
        try:
            return await self._store.count(FRIENDSHIPS, {"user_id": me})
        except READ_ERRORS as e:
            logger.warning(f"friend_count_failed me={me} error={e}")
            return 0

    # -- transitions ---------------------------------------------------------------

    async def send_request(self, me: str, other: str) -> FriendRequest:
        """
        Send a friend request from `me` to `other`.

        If `other` already has a pending request to `me`, that request is
        accepted instead and the accepted request is returned.
        """
        if me == other:
            raise ValidationError("Cannot send friend request to yourself.")

        if await self._are_friends(me, other):
            raise ConflictError("Already friends with this user.")

        if await self._pending_request(me, other):
            raise ConflictError("Friend request already sent.")

        incoming = await self._pending_request(other, me)
        if incoming:
            logger.info(f"friend_request_mutual sender={me} receiver={other} request_id={incoming.id}")
            return await self.accept_request(me, incoming.id)

        try:
            created = await self._store.insert(
                FRIEND_REQUESTS,
                {
                    "sender_id": me,
                    "receiver_id": other,
                    "status": RequestStatus.PENDING.value,
                },
            )
        except ConflictError:
            # a concurrent send won the partial unique index
            raise ConflictError("Friend request already sent.")

        logger.info(f"friend_request_sent sender={me} receiver={other}")
        return FriendRequest(**created[0])

    async def cancel_request(self, me: str, other: str) -> bool:
        """Withdraw my pending request to `other`. Returns False if there was none."""
        removed = await self._store.delete(
            FRIEND_REQUESTS,
            {"sender_id": me, "receiver_id": other, "status": RequestStatus.PENDING.value},
        )
        logger.info(f"friend_request_cancelled sender={me} receiver={other} removed={len(removed)}")
        return bool(removed)

    async def _get_request(self, request_id: str) -> Optional[FriendRequest]:
        rows = await self._store.select(FRIEND_REQUESTS, {"id": request_id}, limit=1)
        return FriendRequest(**rows[0]) if rows else None

    async def _link(self, user_a: str, user_b: str) -> List[Friendship]:
        """Write both directional friendship rows. Safe to repeat."""
        await self._store.upsert(
            FRIENDSHIPS,
            [
                {"user_id": user_a, "friend_id": user_b},
                {"user_id": user_b, "friend_id": user_a},
            ],
            on_conflict=FRIENDSHIP_KEY,
            ignore_duplicates=True,
        )
        rows = await self._store.select(FRIENDSHIPS, {"user_id": user_a, "friend_id": user_b})
        rows += await self._store.select(FRIENDSHIPS, {"user_id": user_b, "friend_id": user_a})
        return [Friendship(**row) for row in rows]

    async def accept_request(self, me: str, request_id: str) -> FriendRequest:
        """
        Accept a request addressed to `me`.

        The status flip only matches a pending row, so of two concurrent
        accepts exactly one performs it. Friendship rows are upserted, which
        makes re-running accept on an accepted request a repair, not an error.
        """
        request = await self._get_request(request_id)
        if request is None:
            raise NotFoundError("Friend request doesn't exist.")
        if request.receiver_id != me:
            raise PermissionDeniedError("Only the receiver can accept a friend request.")
        if request.status == RequestStatus.DECLINED:
            raise ConflictError("Friend request was already declined.")

        if request.status == RequestStatus.PENDING:
            flipped = await self._store.update(
                FRIEND_REQUESTS,
                {"id": request.id, "status": RequestStatus.PENDING.value},
                {"status": RequestStatus.ACCEPTED.value, "updated_at": _now()},
            )
            if not flipped:
                request = await self._get_request(request_id)
                if request is None or request.status != RequestStatus.ACCEPTED:
                    raise ConflictError("Friend request is no longer pending.")
            else:
                request = FriendRequest(**flipped[0])

        await self._link(request.sender_id, request.receiver_id)
        logger.info(f"friend_request_accepted request_id={request.id} sender={request.sender_id} receiver={me}")
        return request

    async def decline_request(self, me: str, request_id: str) -> bool:
        """Decline a pending request addressed to `me`. Already resolved or missing is a no-op."""
        request = await self._get_request(request_id)
        if request is None:
            logger.info(f"friend_request_decline_missing request_id={request_id}")
            return False
        if request.receiver_id != me:
            raise PermissionDeniedError("Only the receiver can decline a friend request.")

        declined = await self._store.update(
            FRIEND_REQUESTS,
            {"id": request_id, "status": RequestStatus.PENDING.value},
            {"status": RequestStatus.DECLINED.value, "updated_at": _now()},
        )
        logger.info(f"friend_request_declined request_id={request_id} receiver={me} changed={len(declined)}")
        return bool(declined)

    async def unfriend(self, me: str, other: str) -> int:
        """
        Delete both directional rows. Returns how many rows were removed (0-2).

        The accepted requests between the pair go first: reconcile, purge and a
        repeated accept all rebuild friendships from them.
        """
        for sender, receiver in ((me, other), (other, me)):
            await self._store.delete(
                FRIEND_REQUESTS,
                {
                    "sender_id": sender,
                    "receiver_id": receiver,
                    "status": RequestStatus.ACCEPTED.value,
                },
            )
        removed = await self._store.delete(FRIENDSHIPS, {"user_id": me, "friend_id": other})
        removed += await self._store.delete(FRIENDSHIPS, {"user_id": other, "friend_id": me})
        logger.info(f"friend_removed user={me} friend={other} rows={len(removed)}")
        return len(removed)

    # -- maintenance ---------------------------------------------------------------

    async def reconcile_friendships(self, me: str) -> int:
        """
        Repair half-written friendships involving `me`.

        Adds the missing mirror row for every one-directional friendship, and
        both rows for every accepted request that never got them. Returns the
        number of rows written.
        """
        outgoing = await self._store.select(FRIENDSHIPS, {"user_id": me})
        incoming = await self._store.select(FRIENDSHIPS, {"friend_id": me})
        existing = {(r["user_id"], r["friend_id"]) for r in outgoing + incoming}

        wanted = set()
        for user_id, friend_id in existing:
            wanted.add((friend_id, user_id))

        accepted = await self._store.select(
            FRIEND_REQUESTS, {"sender_id": me, "status": RequestStatus.ACCEPTED.value}
        )
        accepted += await self._store.select(
            FRIEND_REQUESTS, {"receiver_id": me, "status": RequestStatus.ACCEPTED.value}
        )
        for r in accepted:
            wanted.add((r["sender_id"], r["receiver_id"]))
            wanted.add((r["receiver_id"], r["sender_id"]))

        missing = sorted(wanted - existing)
        if not missing:
            return 0

        written = await self._store.upsert(
            FRIENDSHIPS,
            [{"user_id": user_id, "friend_id": friend_id} for user_id, friend_id in missing],
            on_conflict=FRIENDSHIP_KEY,
            ignore_duplicates=True,
        )
        logger.warning(f"friendships_repaired user={me} rows={len(written)}")
        return len(written)

    async def purge_resolved_requests(self) -> int:
        """
        Delete accepted and declined requests.

        Accepted requests get their friendship rows ensured first, so purging
        never loses a friendship that was only half written.
        """
        accepted = await self._store.select(
            FRIEND_REQUESTS, {"status": RequestStatus.ACCEPTED.value}
        )
        for r in accepted:
            await self._link(r["sender_id"], r["receiver_id"])

        removed = await self._store.delete(
            FRIEND_REQUESTS, {"status": RequestStatus.ACCEPTED.value}
        )
        removed += await self._store.delete(
            FRIEND_REQUESTS, {"status": RequestStatus.DECLINED.value}
        )
        logger.info(f"friend_requests_purged rows={len(removed)}")
        return len(removed)
