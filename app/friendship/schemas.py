from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID

from app.profiles.schemas import Profile
from .models import FriendRequest, RelationshipStatus, RequestWithProfile


# Friend search
class FriendsSearchResponseModel(BaseModel):
    profiles: List[Profile]


# Relationship status
class RelationshipStatusResponseModel(BaseModel):
    user_id: str
    status: RelationshipStatus


# friend request
class FriendRequestModel(BaseModel):
    receiver_id: UUID


class FriendRequestResponseModel(BaseModel):
    message: str
    request: FriendRequest


# accept_friend_request
class AcceptFriendRequestModel(BaseModel):
    request_id: UUID


class AcceptFriendRequestResponseModel(BaseModel):
    friendship_accept: bool
    request: FriendRequest


# Decline friendship request
class DeclineFriendshipRequestResponseModel(BaseModel):
    request_declined: bool


# cancel sent friend request
class CancelFriendshipRequestResponseModel(BaseModel):
    request_canceled: bool


# remove friend
class RemoveFriendResponseModel(BaseModel):
    friend_removed: bool
    rows_removed: int


# request lists
class FriendRequestListResponseModel(BaseModel):
    requests: List[RequestWithProfile]


class CountResponseModel(BaseModel):
    count: int


# friends
class FriendsListResponseModel(BaseModel):
    friends: List[Profile]


class ReconcileResponseModel(BaseModel):
    rows_repaired: int
    message: Optional[str] = None
