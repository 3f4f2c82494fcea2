from pydantic import BaseModel, field_validator
from typing import List, Optional
from datetime import datetime


class UserBrief(BaseModel):
    id: str
    username: str
    email: str


# Friend search
class SearchResult(UserBrief):
    relationship: str


class FriendsSearchResponseModel(BaseModel):
    results: List[SearchResult]


# friend request
class FriendRequestModel(BaseModel):
    target_user_id: str

    @field_validator("target_user_id")
    @classmethod
    def strip_target(cls, value: str) -> str:
        return value.strip()


class FriendRequestResponseModel(BaseModel):
    message: str
    outcome: str
    request_id: Optional[str] = None


# pending requests
class IncomingRequestItem(BaseModel):
    id: str
    sender: Optional[UserBrief]
    status: str
    created_at: datetime


class OutgoingRequestItem(BaseModel):
    id: str
    receiver: Optional[UserBrief]
    status: str
    created_at: datetime


class FriendRequestsResponseModel(BaseModel):
    incoming: List[IncomingRequestItem]
    outgoing: List[OutgoingRequestItem]


# accept / decline
class RespondFriendRequestResponseModel(BaseModel):
    message: str
    outcome: str
    request_id: str
    status: str
    responded_at: Optional[datetime] = None


# friends
class FriendsResponseModel(BaseModel):
    friends: List[UserBrief]
