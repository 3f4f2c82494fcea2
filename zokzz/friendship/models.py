from dataclasses import dataclass
from enum import Enum
from typing import Optional

from zokzz.core.errors import CoreError, ErrorKind


FRIEND_REQUESTS_PATH = "friendRequests"
FRIEND_REQUEST_PAIRS_PATH = "friendRequestPairs"
FRIEND_REQUEST_RESPONSES_PATH = "friendRequestResponses"


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]

    def ensure_transition(self, target: "FriendRequestStatus") -> None:
        if target not in TRANSITIONS[self]:
            raise CoreError(
                ErrorKind.INVALID_TRANSITION,
                f"Friend request cannot move from {self.value} to {target.value}.",
            )


TRANSITIONS = {
    FriendRequestStatus.PENDING: {FriendRequestStatus.ACCEPTED, FriendRequestStatus.DECLINED},
    FriendRequestStatus.ACCEPTED: set(),
    FriendRequestStatus.DECLINED: set(),
}


class ResponseAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"

    @property
    def target_status(self) -> FriendRequestStatus:
        if self is ResponseAction.ACCEPT:
            return FriendRequestStatus.ACCEPTED
        return FriendRequestStatus.DECLINED


class SendOutcome(str, Enum):
    SENT = "sent"
    ALREADY_FRIENDS = "already_friends"
    ALREADY_REQUESTED = "already_requested"
    AUTO_ACCEPTED = "auto_accepted"


class RespondOutcome(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ALREADY_PROCESSED = "already_processed"


class Relationship(str, Enum):
    FRIEND = "friend"
    INCOMING_REQUEST = "incoming-request"
    OUTGOING_REQUEST = "outgoing-request"
    NONE = "none"


def build_pair_key(user_a: str, user_b: str) -> str:
    return ":".join(sorted([user_a, user_b]))


@dataclass
class FriendRequest:
    id: str
    from_user: str
    to_user: str
    status: FriendRequestStatus
    created_at: str
    responded_at: Optional[str]
    pair_key: str

    @classmethod
    def from_record(cls, request_id: str, record) -> Optional["FriendRequest"]:
        if not isinstance(record, dict):
            return None

        try:
            status = FriendRequestStatus(record.get("status"))
        except ValueError:
            return None

        return cls(
            id=request_id,
            from_user=record.get("from"),
            to_user=record.get("to"),
            status=status,
            created_at=record.get("createdAt"),
            responded_at=record.get("respondedAt"),
            pair_key=record.get("pairKey")
            or build_pair_key(record.get("from", ""), record.get("to", "")),
        )

    def to_record(self) -> dict:
        return {
            "from": self.from_user,
            "to": self.to_user,
            "status": self.status.value,
            "createdAt": self.created_at,
            "respondedAt": self.responded_at,
            "pairKey": self.pair_key,
        }


@dataclass
class SendResult:
    outcome: SendOutcome
    request_id: Optional[str] = None


@dataclass
class RespondResult:
    outcome: RespondOutcome
    request: FriendRequest
