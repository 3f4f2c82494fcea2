from fastapi import APIRouter, Depends, Response, status

from zokzz.core.dependencies import get_current_user_id, get_friend_graph

from .models import RespondOutcome, ResponseAction, SendOutcome
from .service import FriendGraph
from .schemas import (
    FriendsSearchResponseModel,
    FriendRequestModel,
    FriendRequestResponseModel,
    FriendRequestsResponseModel,
    RespondFriendRequestResponseModel,
    FriendsResponseModel,
)


router = APIRouter()

SEND_MESSAGES = {
    SendOutcome.SENT: "Friend request sent.",
    SendOutcome.ALREADY_FRIENDS: "You are already friends.",
    SendOutcome.ALREADY_REQUESTED: "Friend request already sent.",
    SendOutcome.AUTO_ACCEPTED: "You are now friends.",
}

RESPOND_MESSAGES = {
    RespondOutcome.ACCEPTED: "Friend request accepted.",
    RespondOutcome.DECLINED: "Friend request declined.",
    RespondOutcome.ALREADY_PROCESSED: "Friend request already processed.",
}


@router.get("/search", response_model=FriendsSearchResponseModel, status_code=200)
def search_users(
    q: str = "",
    exclude_self: bool = True,
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """
    Search users by username or email prefix.

    Each result is tagged with its relationship to the caller, the first
    match of `friend`, `incoming-request`, `outgoing-request`, `none`.
    Queries shorter than 2 characters return no results.
    """
    return {"results": graph.search_users(user_id, q, exclude_self=exclude_self)}


@router.post("/request", response_model=FriendRequestResponseModel, status_code=201)
def send_friend_request(
    data: FriendRequestModel,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """
    Send a friend request to another user.

    **Process**
    1. Reject requests to yourself.
    2. Already friends, or an accepted request exists: nothing is written.
    3. A pending request in the same direction: nothing is written.
    4. A pending request from the target to you: it is accepted instead.
    5. Otherwise a new pending request is created (201).

    Outcomes 2 to 4 answer with 200, so resending is safe.

    **Errors**
    - `400`: `SELF_REQUEST` or missing target
    - `404`: Target user not found
    """
    result = graph.send_request(user_id, data.target_user_id)

    if result.outcome is not SendOutcome.SENT:
        response.status_code = status.HTTP_200_OK

    return {
        "message": SEND_MESSAGES[result.outcome],
        "outcome": result.outcome.value,
        "request_id": result.request_id,
    }


@router.get("/requests", response_model=FriendRequestsResponseModel, status_code=200)
def list_friend_requests(
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """Pending requests sent to and by the caller, newest first."""
    requests = graph.list_friend_requests(user_id)

    return {
        "incoming": [
            {
                "id": r["id"],
                "sender": r["from"],
                "status": r["status"],
                "created_at": r["createdAt"],
            }
            for r in requests["incoming"]
        ],
        "outgoing": [
            {
                "id": r["id"],
                "receiver": r["to"],
                "status": r["status"],
                "created_at": r["createdAt"],
            }
            for r in requests["outgoing"]
        ],
    }


def _respond(graph: FriendGraph, request_id: str, user_id: str, action: ResponseAction):
    result = graph.respond(request_id, user_id, action)
    return {
        "message": RESPOND_MESSAGES[result.outcome],
        "outcome": result.outcome.value,
        "request_id": result.request.id,
        "status": result.request.status.value,
        "responded_at": result.request.responded_at,
    }


@router.post(
    "/requests/{request_id}/accept",
    response_model=RespondFriendRequestResponseModel,
    status_code=200,
)
def accept_friend_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """
    Accept a pending friend request. Only the recipient can accept.

    Accepting an already accepted or declined request returns
    `already_processed` without changing anything.

    **Errors**
    - `403`: Caller is not the recipient
    - `404`: No such request
    """
    return _respond(graph, request_id, user_id, ResponseAction.ACCEPT)


@router.post(
    "/requests/{request_id}/decline",
    response_model=RespondFriendRequestResponseModel,
    status_code=200,
)
def decline_friend_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """Decline a pending friend request. Same rules as accept; no friendship is created."""
    return _respond(graph, request_id, user_id, ResponseAction.DECLINE)


@router.get("", response_model=FriendsResponseModel, status_code=200)
def list_friends(
    user_id: str = Depends(get_current_user_id),
    graph: FriendGraph = Depends(get_friend_graph),
):
    return {"friends": graph.list_friends(user_id)}
