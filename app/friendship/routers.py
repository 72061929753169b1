from fastapi import APIRouter, Depends

from app.core.dependencies import (
    get_current_user_id,
    get_profile_service,
    get_relationship_service,
)
from app.profiles.service import ProfileService
from .models import RequestStatus
from .service import RelationshipService
from .schemas import (
    FriendsSearchResponseModel,
    RelationshipStatusResponseModel,
    FriendRequestModel,
    FriendRequestResponseModel,
    AcceptFriendRequestModel,
    AcceptFriendRequestResponseModel,
    DeclineFriendshipRequestResponseModel,
    CancelFriendshipRequestResponseModel,
    RemoveFriendResponseModel,
    FriendRequestListResponseModel,
    CountResponseModel,
    FriendsListResponseModel,
    ReconcileResponseModel,
)


router = APIRouter()


@router.get("/search/{query}", response_model=FriendsSearchResponseModel, status_code=200)
async def search_users(
    query: str,
    me: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Search other users by full name or title.

    Matching is a case-insensitive "contains" on either column. The caller is
    never part of the result. A failed lookup returns an empty list.
    """
    return {"profiles": await profiles.search_users(me, query)}


@router.get(
    "/status/{other_id}", response_model=RelationshipStatusResponseModel, status_code=200
)
async def relationship_status(
    other_id: str,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Relationship between the authenticated user and `other_id`.

    **Returns**
    - `status`: one of `friend`, `pending_sent`, `pending_received`, `none`.
      Checked in that order; the first match wins. Lookup failures read as `none`.
    """
    return {"user_id": other_id, "status": await service.relationship_status(me, other_id)}


@router.post("/request", response_model=FriendRequestResponseModel, status_code=201)
async def send_friend_request(
    data: FriendRequestModel,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Send a friend request to another user.

    **Process**
    1. Prevent self–friend-requests.
    2. Prevent sending to users who are already friends.
    3. Prevent a second pending request to the same user.
    4. If the other user already asked us, accept their request instead.
    5. Otherwise create a new `pending` request.

    **Errors**
    - `400`: Attempt to send a friend request to yourself.
    - `409`: Already friends, or a request is already pending.
    - `500`: Database error.
    """
    request = await service.send_request(me, str(data.receiver_id))

    message = (
        "Friend request accepted."
        if request.status == RequestStatus.ACCEPTED
        else "Friend request sent."
    )
    return {"message": message, "request": request}


@router.post(
    "/request/accept", response_model=AcceptFriendRequestResponseModel, status_code=200
)
async def accept_friend_request(
    data: AcceptFriendRequestModel,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Accept a friend request sent to the authenticated user.

    The request is marked `accepted` and both friendship rows are written.
    Calling this again on an accepted request is safe and repairs missing
    friendship rows.

    **Errors**
    - `403`: Only the receiver can accept.
    - `404`: No such friend request.
    - `409`: The request was declined or is no longer pending.
    """
    request = await service.accept_request(me, str(data.request_id))
    return {"friendship_accept": True, "request": request}


# Only the receiver can decline
@router.post(
    "/request/decline/{request_id}",
    response_model=DeclineFriendshipRequestResponseModel,
    status_code=200,
)
async def decline_friend_request(
    request_id: str,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Decline a pending friend request.

    Declining a request that is already resolved or gone succeeds with
    `request_declined: false`.
    """
    return {"request_declined": await service.decline_request(me, request_id)}


# Only the sender can cancel
@router.delete(
    "/request/cancel/{receiver_id}",
    response_model=CancelFriendshipRequestResponseModel,
    status_code=200,
)
async def cancel_friend_request(
    receiver_id: str,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Withdraw a pending request. Nothing to withdraw is not an error."""
    return {"request_canceled": await service.cancel_request(me, receiver_id)}


@router.delete(
    "/remove/{other_id}",
    response_model=RemoveFriendResponseModel,
    status_code=200,
)
async def remove_friend(
    other_id: str,
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Remove a friendship in both directions.

    The accepted request that created it is removed too, so reconcile and
    purge don't bring the friendship back.

    Args:
        other_id (str):
            The ID of the user to remove from the authenticated user's friend list.

    Returns:
        RemoveFriendResponseModel:
            `friend_removed` is true when at least one row was deleted.
    """
    rows = await service.unfriend(me, other_id)
    return {"friend_removed": rows > 0, "rows_removed": rows}


@router.get(
    "/requests/incoming", response_model=FriendRequestListResponseModel, status_code=200
)
async def incoming_requests(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Pending requests sent to the authenticated user, newest first.

    **Returns**
    - `requests`: each with the `request` row and the sender as `counterpart`
      (`null` if the profile can't be loaded)

    **Errors**
    - A failed lookup returns an empty list instead of an error.
    """
    return {"requests": await service.list_incoming_requests(me)}


@router.get(
    "/requests/outgoing", response_model=FriendRequestListResponseModel, status_code=200
)
async def outgoing_requests(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Pending requests the authenticated user has sent, newest first.

    **Returns**
    - `requests`: each with the `request` row and the receiver as `counterpart`
    """
    return {"requests": await service.list_outgoing_requests(me)}


@router.get("/requests/count", response_model=CountResponseModel, status_code=200)
async def pending_requests_count(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Number of pending requests waiting for the authenticated user. 0 if the count fails."""
    return {"count": await service.pending_requests_count(me)}


@router.get("/", response_model=FriendsListResponseModel, status_code=200)
async def list_friends(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """
    Friends of the authenticated user, most recent first.

    **Returns**
    - `friends`: profiles; a friend whose profile is missing comes back with
      only `id` set
    """
    return {"friends": await service.list_friends(me)}


@router.get("/count", response_model=CountResponseModel, status_code=200)
async def friend_count(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Number of friends. 0 if the count fails."""
    return {"count": await service.friend_count(me)}


@router.post("/reconcile", response_model=ReconcileResponseModel, status_code=200)
async def reconcile_friendships(
    me: str = Depends(get_current_user_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Write any friendship row that is missing its mirror."""
    rows = await service.reconcile_friendships(me)
    return {
        "rows_repaired": rows,
        "message": "Friendships repaired." if rows else "Nothing to repair.",
    }
