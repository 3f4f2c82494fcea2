from typing import Optional

from fastapi import APIRouter, Depends

from zokzz.core.dependencies import (
    get_conversation_log,
    get_current_user_id,
    get_friend_graph,
)
from zokzz.friendship.service import FriendGraph

from .models import MessageDraft
from .service import ConversationLog
from .schemas import (
    StartConversationModel,
    StartConversationResponseModel,
    GetConversationsResponseModel,
    GetMessagesResponseModel,
    SendMessageModel,
    SendMessageResponseModel,
)

router = APIRouter()

def to_message_item(message: dict) -> dict:
    image = message.get("image")
    return {
        "id": message["id"],
        "sender_id": message.get("senderId"),
        "type": message.get("type"),
        "body": message.get("body"),
        "image": (
            {
                "data": image.get("data"),
                "mime_type": image.get("mimeType"),
                "size": image.get("size"),
            }
            if isinstance(image, dict)
            else None
        ),
        "created_at": message.get("createdAt"),
        "encoding": message.get("encoding"),
    }

@router.post(
    "/conversations",
    response_model=StartConversationResponseModel,
    status_code=200,
)
def start_conversation(
    data: StartConversationModel,
    user_id: str = Depends(get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
    graph: FriendGraph = Depends(get_friend_graph),
):
    """
    Get or create the conversation with a friend.

    The conversation id is derived from both user ids, so calling this again
    returns the same conversation.

    **Input**
    - `target_user_id`: id of the friend to message

    **Returns**
    - `conversation_id`

    **Errors**
    - 400: Missing target
    - 401: Unauthorized
    - 403: `NOT_FRIENDS`, nothing is created
    """
    conversation_id = log.start_conversation(graph, user_id, data.target_user_id)
    return {"conversation_id": conversation_id}

@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    user_id: str = Depends(get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
):
    """
    Conversations of the authenticated user, most recently active first.

    Each entry carries the other participant and the last message preview,
    for the chat sidebar.
    """
    return {
        "conversations": [
            {
                "id": c["id"],
                "other_user": c["otherUser"],
                "updated_at": c["updatedAt"],
                "last_message_preview": c["lastMessagePreview"],
                "last_message_sender": c["lastMessageSender"],
                "last_message_at": c["lastMessageAt"],
            }
            for c in log.list_conversations(user_id)
        ]
    }

@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: str,
    since: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
):
    """
    Messages of a conversation, oldest first.

    **Query Parameters**
    - `since`: createdAt of the last message seen. Inclusive, so the boundary
      message is returned again; clients drop ids they already have.

    At most the newest 100 matching messages are returned.

    **Errors**
    - 401: Invalid or expired authentication token
    - 404: Conversation does not exist or caller is not a participant
    """
    log.ensure_participant(conversation_id, user_id)
    messages = log.fetch_messages(conversation_id, since=since)
    return {"messages": [to_message_item(m) for m in messages]}

@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    conversation_id: str,
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    log: ConversationLog = Depends(get_conversation_log),
):
    """
    Append a message to a conversation the caller takes part in.

    **Input**
    - `type`: `text` (default) or `image`
    - `body`: Message text, or the caption of an image
    - `image_data`: Base64 or a `data:image/...;base64,` URL, at most 2 MiB decoded
    - `image_mime_type`: Used when `image_data` is not a data URL

    **Errors**
    - 400: Empty body, invalid or oversized image, unsupported type
    - 404: Conversation not found
    """
    log.ensure_participant(conversation_id, user_id)

    message = log.append_message(
        conversation_id,
        user_id,
        MessageDraft(
            type=data.type,
            body=data.body,
            image_data=data.image_data,
            image_mime_type=data.image_mime_type,
        ),
    )
    return {"message": to_message_item(message)}
