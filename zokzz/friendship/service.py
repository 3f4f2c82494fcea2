import logging
from typing import List, Optional

from zokzz.auth.users import SEARCH_LIMIT, UserDirectory, public_profile
from zokzz.core.errors import CoreError, ErrorKind
from zokzz.core.store import DocumentStore, join_path
from zokzz.utils.timestamps import utc_now_iso

from .models import (
    FRIEND_REQUESTS_PATH,
    FRIEND_REQUEST_PAIRS_PATH,
    FRIEND_REQUEST_RESPONSES_PATH,
    FriendRequest,
    FriendRequestStatus,
    Relationship,
    RespondOutcome,
    RespondResult,
    ResponseAction,
    SendOutcome,
    SendResult,
    build_pair_key,
)


logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2
MAX_PAIR_SLOT_ATTEMPTS = 5


class FriendGraph:
    """
    Friend request lifecycle and the symmetric friendship edges.

    A pending request holds the newest slot under ``friendRequestPairs/{pairKey}``
    so two racing senders cannot both leave a pending request for the same
    pair. Slots are never deleted; a sender moves past one only when its holder
    is terminal, and terminal states never change. The first
    responder holds ``friendRequestResponses/{requestId}`` so a request is
    resolved exactly once. Friendship edges are two independent writes; reads
    accept either edge and repair the missing one.
    """

    def __init__(self, store: DocumentStore, users: UserDirectory = None):
        self.store = store
        self.users = users or UserDirectory(store)

    # --- requests -------------------------------------------------------

    def get_request(self, request_id: str) -> Optional[FriendRequest]:
        if not request_id:
            return None
        record = self.store.read(join_path(FRIEND_REQUESTS_PATH, request_id))
        return FriendRequest.from_record(request_id, record)

    def find_requests_between(self, user_a: str, user_b: str) -> List[FriendRequest]:
        pair_key = build_pair_key(user_a, user_b)
        documents = self.store.range_query(
            FRIEND_REQUESTS_PATH, "pairKey", start=pair_key, end=pair_key
        )
        requests = [FriendRequest.from_record(doc.key, doc.value) for doc in documents]
        return [request for request in requests if request]

    def send_request(self, from_id: str, to_id: str) -> SendResult:
        if not from_id or not to_id:
            raise CoreError(ErrorKind.INVALID_INPUT, "targetUserId is required.")

        if from_id == to_id:
            raise CoreError(ErrorKind.SELF_REQUEST, "Cannot send a friend request to yourself.")

        from_user = self.users.get(from_id)
        to_user = self.users.get(to_id)
        if not from_user or not to_user:
            raise CoreError(ErrorKind.USER_NOT_FOUND, "User not found.")

        if from_user["friends"].get(to_id) or to_user["friends"].get(from_id):
            self._repair_edges(from_id, to_id)
            return SendResult(SendOutcome.ALREADY_FRIENDS)

        existing = self._resolve_existing(from_id, to_id, self.find_requests_between(from_id, to_id))
        if existing:
            return existing

        return self._create_request(from_id, to_id)

    def _resolve_existing(self, from_id, to_id, requests) -> Optional[SendResult]:
        for request in requests:
            if request.status is FriendRequestStatus.ACCEPTED:
                self._repair_edges(from_id, to_id)
                return SendResult(SendOutcome.ALREADY_FRIENDS, request.id)

        pending = [r for r in requests if r.status is FriendRequestStatus.PENDING]

        for request in pending:
            if request.from_user == from_id and request.to_user == to_id:
                return SendResult(SendOutcome.ALREADY_REQUESTED, request.id)

        for request in pending:
            if request.from_user == to_id and request.to_user == from_id:
                # mutual requests collapse into one friendship
                self.accept(request.id, from_id)
                logger.info(f"friend_request_auto_accepted request_id={request.id}")
                return SendResult(SendOutcome.AUTO_ACCEPTED, request.id)

        return None

    def _create_request(self, from_id: str, to_id: str) -> SendResult:
        request = FriendRequest(
            id=self.store.push_key(FRIEND_REQUESTS_PATH),
            from_user=from_id,
            to_user=to_id,
            status=FriendRequestStatus.PENDING,
            created_at=utc_now_iso(),
            responded_at=None,
            pair_key=build_pair_key(from_id, to_id),
        )
        request_path = join_path(FRIEND_REQUESTS_PATH, request.id)
        pair_path = join_path(FRIEND_REQUEST_PAIRS_PATH, request.pair_key)

        # the record goes first so whoever holds a pair slot is always readable
        self.store.write(request_path, request.to_record())

        first_slot = self._latest_pair_slot(request.pair_key)
        for index in range(first_slot, first_slot + MAX_PAIR_SLOT_ATTEMPTS):
            claim = self.store.conditional_set(join_path(pair_path, str(index)), request.id)
            if claim.committed:
                return self._confirm_sent(request)

            holder = self.get_request(claim.current)
            if holder and not holder.status.is_terminal:
                self.store.delete(request_path)
                return self._resolve_existing(from_id, to_id, [holder]) or SendResult(
                    SendOutcome.ALREADY_REQUESTED, holder.id
                )

            if holder and holder.status is FriendRequestStatus.ACCEPTED:
                self.store.delete(request_path)
                self._repair_edges(from_id, to_id)
                return SendResult(SendOutcome.ALREADY_FRIENDS, holder.id)

            # declined or vanished holder: its slot is kept, the next one is tried
            logger.debug(
                f"friend_request_pair_slot_taken pair={request.pair_key} slot={index} holder={claim.current}"
            )

        self.store.delete(request_path)
        raise CoreError(ErrorKind.INTERNAL, "Unable to send friend request at this time.")

    def _latest_pair_slot(self, pair_key: str) -> int:
        slots = self.store.read(join_path(FRIEND_REQUEST_PAIRS_PATH, pair_key))
        if not isinstance(slots, dict):
            return 0
        indexes = [int(index) for index in slots if str(index).isdigit()]
        return max(indexes, default=0)

    def _confirm_sent(self, request: FriendRequest) -> SendResult:
        # the peer may have auto-accepted between the claim and now
        current = self.get_request(request.id)
        if current and current.status is FriendRequestStatus.ACCEPTED:
            return SendResult(SendOutcome.ALREADY_FRIENDS, request.id)

        logger.info(
            f"friend_request_sent request_id={request.id} from={request.from_user} to={request.to_user}"
        )
        return SendResult(SendOutcome.SENT, request.id)

    def accept(self, request_id: str, acting_user_id: str) -> RespondResult:
        return self.respond(request_id, acting_user_id, ResponseAction.ACCEPT)

    def decline(self, request_id: str, acting_user_id: str) -> RespondResult:
        return self.respond(request_id, acting_user_id, ResponseAction.DECLINE)

    def respond(self, request_id: str, acting_user_id: str, action: ResponseAction) -> RespondResult:
        request = self.get_request(request_id)
        if not request:
            raise CoreError(ErrorKind.REQUEST_NOT_FOUND, "Request not found.")

        if request.to_user != acting_user_id:
            raise CoreError(
                ErrorKind.NOT_REQUEST_RECIPIENT,
                f"Only the recipient can {action.value} this request.",
            )

        if request.status is not FriendRequestStatus.PENDING:
            return RespondResult(RespondOutcome.ALREADY_PROCESSED, request)

        target = action.target_status
        request.status.ensure_transition(target)

        response = {"status": target.value, "respondedAt": utc_now_iso()}
        claim = self.store.conditional_set(
            join_path(FRIEND_REQUEST_RESPONSES_PATH, request_id), response
        )

        if not claim.committed:
            # another responder won; finish its transition if it stopped midway
            self._apply_response(request, claim.current)
            return RespondResult(RespondOutcome.ALREADY_PROCESSED, request)

        self._apply_response(request, response)
        logger.info(
            f"friend_request_{target.value} request_id={request_id} by={acting_user_id}"
        )

        if target is FriendRequestStatus.ACCEPTED:
            return RespondResult(RespondOutcome.ACCEPTED, request)
        return RespondResult(RespondOutcome.DECLINED, request)

    def _apply_response(self, request: FriendRequest, response) -> None:
        current = self.get_request(request.id)

        if not current or current.status is not FriendRequestStatus.PENDING:
            if current:
                request.status = current.status
                request.responded_at = current.responded_at
            return

        if not isinstance(response, dict):
            return

        target = FriendRequestStatus(response["status"])
        self.store.update(
            join_path(FRIEND_REQUESTS_PATH, request.id),
            {"status": target.value, "respondedAt": response["respondedAt"]},
        )
        request.status = target
        request.responded_at = response["respondedAt"]

        if target is FriendRequestStatus.ACCEPTED:
            self.users.add_friend_edge(request.from_user, request.to_user)
            self.users.add_friend_edge(request.to_user, request.from_user)

    def list_incoming(self, user_id: str) -> List[FriendRequest]:
        return self._list_pending("to", user_id)

    def list_outgoing(self, user_id: str) -> List[FriendRequest]:
        return self._list_pending("from", user_id)

    def _list_pending(self, field: str, user_id: str) -> List[FriendRequest]:
        documents = self.store.range_query(FRIEND_REQUESTS_PATH, field, start=user_id, end=user_id)
        requests = [FriendRequest.from_record(doc.key, doc.value) for doc in documents]
        pending = [r for r in requests if r and r.status is FriendRequestStatus.PENDING]
        return sorted(pending, key=lambda r: r.created_at or "", reverse=True)

    def list_friend_requests(self, user_id: str) -> dict:
        incoming = [
            {
                "id": request.id,
                "from": public_profile(self.users.get(request.from_user)),
                "status": request.status.value,
                "createdAt": request.created_at,
            }
            for request in self.list_incoming(user_id)
        ]
        outgoing = [
            {
                "id": request.id,
                "to": public_profile(self.users.get(request.to_user)),
                "status": request.status.value,
                "createdAt": request.created_at,
            }
            for request in self.list_outgoing(user_id)
        ]
        return {"incoming": incoming, "outgoing": outgoing}

    # --- friendships ----------------------------------------------------

    def are_friends(self, user_a: str, user_b: str) -> bool:
        """Either edge is enough; a one-sided edge is repaired on the way."""
        forward = self.users.has_friend_edge(user_a, user_b)
        backward = self.users.has_friend_edge(user_b, user_a)

        if forward != backward:
            self._repair_edges(user_a, user_b)

        return forward or backward

    def _repair_edges(self, user_a: str, user_b: str) -> None:
        for owner, friend in ((user_a, user_b), (user_b, user_a)):
            try:
                if not self.users.has_friend_edge(owner, friend):
                    logger.warning(f"friendship_edge_repaired owner={owner} friend={friend}")
                    self.users.add_friend_edge(owner, friend)
            except Exception:
                logger.exception(f"friendship_edge_repair_failed owner={owner} friend={friend}")

    def list_friends(self, user_id: str) -> List[dict]:
        friends = [self.users.get(friend_id) for friend_id in self.users.friend_ids(user_id)]
        profiles = [public_profile(friend) for friend in friends if friend]
        return sorted(profiles, key=lambda friend: (friend["username"] or "").lower())

    def search_users(self, user_id: str, query: str, exclude_self: bool = True) -> List[dict]:
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            return []

        current = self.users.get(user_id)
        if not current:
            raise CoreError(ErrorKind.USER_NOT_FOUND, "User not found.")

        incoming = {request.from_user for request in self.list_incoming(user_id)}
        outgoing = {request.to_user for request in self.list_outgoing(user_id)}

        # one extra so dropping the caller still leaves a full page
        limit = SEARCH_LIMIT + 1 if exclude_self else SEARCH_LIMIT

        results = []
        for candidate in self.users.search(query, limit=limit):
            if exclude_self and candidate["id"] == user_id:
                continue

            results.append(
                {
                    **public_profile(candidate),
                    "relationship": relationship_for(current, candidate, incoming, outgoing).value,
                }
            )
        return results[:SEARCH_LIMIT]


def relationship_for(current: dict, candidate: dict, incoming: set, outgoing: set) -> Relationship:
    candidate_id = candidate["id"]

    # friendship wins over any stale request record
    if current["friends"].get(candidate_id) or candidate["friends"].get(current["id"]):
        return Relationship.FRIEND
    if candidate_id in incoming:
        return Relationship.INCOMING_REQUEST
    if candidate_id in outgoing:
        return Relationship.OUTGOING_REQUEST
    return Relationship.NONE
