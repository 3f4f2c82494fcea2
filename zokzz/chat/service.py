import logging
from typing import List, Optional

from zokzz.auth.users import UserDirectory, public_profile
from zokzz.core.errors import CoreError, ErrorKind
from zokzz.core.store import DocumentStore, join_path
from zokzz.friendship.service import FriendGraph
from zokzz.utils.timestamps import normalize_timestamp, utc_now_iso

from .attachments import decode_image
from .models import (
    CONVERSATIONS_PATH,
    FETCH_LIMIT,
    IMAGE_PREVIEW,
    MESSAGES_PATH,
    PREVIEW_LENGTH,
    TEXT_ENCODING,
    USER_CONVERSATIONS_PATH,
    MessageDraft,
    MessageType,
    get_conversation_id,
)


logger = logging.getLogger(__name__)


class ConversationLog:
    """
    1:1 conversations and their append-only message logs.

    Friendship is not checked here; callers that open a conversation on a
    user's behalf go through ``start_conversation``.
    """

    def __init__(self, store: DocumentStore, users: UserDirectory = None):
        self.store = store
        self.users = users or UserDirectory(store)

    def _conversation_path(self, conversation_id: str) -> str:
        return join_path(CONVERSATIONS_PATH, conversation_id)

    def get_conversation(self, conversation_id: str) -> Optional[dict]:
        if not conversation_id:
            return None
        conversation = self.store.read(self._conversation_path(conversation_id))
        return conversation if isinstance(conversation, dict) else None

    def ensure_conversation(self, user_a: str, user_b: str) -> str:
        if not user_a or not user_b:
            raise CoreError(ErrorKind.PARTICIPANTS_REQUIRED, "Both participants are required.")

        conversation_id = get_conversation_id(user_a, user_b)
        if self.get_conversation(conversation_id):
            return conversation_id

        # racing creators write identical metadata, last write wins
        now = utc_now_iso()
        self.store.write(
            self._conversation_path(conversation_id),
            {
                "participants": {user_a: True, user_b: True},
                "createdAt": now,
                "updatedAt": now,
            },
        )
        self.store.update(
            USER_CONVERSATIONS_PATH,
            {
                f"{user_a}/{conversation_id}": True,
                f"{user_b}/{conversation_id}": True,
            },
        )
        logger.info(f"conversation_created conversation_id={conversation_id}")
        return conversation_id

    def start_conversation(self, friends: FriendGraph, user_id: str, target_user_id: str) -> str:
        """Open (or reuse) the conversation with a friend. Nothing is written for non-friends."""
        if not target_user_id:
            raise CoreError(ErrorKind.INVALID_INPUT, "targetUserId is required.")

        if target_user_id == user_id or not friends.are_friends(user_id, target_user_id):
            raise CoreError(ErrorKind.NOT_FRIENDS, "You can only chat with friends.")

        return self.ensure_conversation(user_id, target_user_id)

    def ensure_participant(self, conversation_id: str, user_id: str) -> dict:
        conversation = self.get_conversation(conversation_id)

        # same answer for missing and foreign conversations
        if not conversation or not (conversation.get("participants") or {}).get(user_id):
            raise CoreError(ErrorKind.CONVERSATION_NOT_FOUND, "Conversation not found.")

        return conversation

    def list_conversations(self, user_id: str) -> List[dict]:
        conversation_ids = self.store.read(join_path(USER_CONVERSATIONS_PATH, user_id)) or {}

        conversations = []
        for conversation_id in conversation_ids:
            payload = self.get_conversation(conversation_id)
            if not payload:
                continue

            other_id = next(
                (pid for pid in (payload.get("participants") or {}) if pid != user_id),
                None,
            )
            conversations.append(
                {
                    "id": conversation_id,
                    "otherUser": public_profile(self.users.get(other_id)) if other_id else None,
                    "updatedAt": payload.get("updatedAt"),
                    "lastMessagePreview": payload.get("lastMessagePreview"),
                    "lastMessageSender": payload.get("lastMessageSender"),
                    "lastMessageAt": payload.get("lastMessageAt"),
                }
            )

        return sorted(conversations, key=lambda c: c["updatedAt"] or "", reverse=True)

    def fetch_messages(self, conversation_id: str, since: Optional[str] = None) -> List[dict]:
        """
        Messages created at or after ``since``, oldest first, at most the
        newest FETCH_LIMIT of them.

        ``since`` is inclusive: pollers pass the createdAt of the last message
        they saw and drop the ids they already have.
        """
        try:
            since = normalize_timestamp(since)
        except (ValueError, OverflowError):
            raise CoreError(ErrorKind.INVALID_INPUT, "since must be an ISO 8601 timestamp.")

        documents = self.store.range_query(
            join_path(MESSAGES_PATH, conversation_id),
            "createdAt",
            start=since,
            limit=FETCH_LIMIT,
            last=True,
        )
        return [{"id": document.key, **document.value} for document in documents]

    def append_message(self, conversation_id: str, sender_id: str, draft: MessageDraft) -> dict:
        message_type = (draft.type or MessageType.TEXT.value).strip().lower()

        if message_type == MessageType.TEXT.value:
            body = draft.body if isinstance(draft.body, str) else ""
            if not body.strip():
                raise CoreError(ErrorKind.MESSAGE_BODY_REQUIRED, "Message body required.")
            record = {"type": MessageType.TEXT.value, "body": body}
            preview = body.strip()[:PREVIEW_LENGTH]

        elif message_type == MessageType.IMAGE.value:
            attachment = decode_image(draft.image_data, draft.image_mime_type)
            caption = draft.body.strip() if isinstance(draft.body, str) else ""
            record = {"type": MessageType.IMAGE.value, "image": attachment.to_record()}
            if caption:
                record["body"] = caption
            preview = f"Image: {caption}"[:PREVIEW_LENGTH] if caption else IMAGE_PREVIEW

        else:
            raise CoreError(ErrorKind.UNSUPPORTED_MESSAGE_TYPE, "Unsupported message type.")

        now = utc_now_iso()
        record.update({"senderId": sender_id, "createdAt": now, "encoding": TEXT_ENCODING})

        messages_path = join_path(MESSAGES_PATH, conversation_id)
        message_id = self.store.push_key(messages_path)
        self.store.write(join_path(messages_path, message_id), record)

        self.store.update(
            self._conversation_path(conversation_id),
            {
                "updatedAt": now,
                "lastMessagePreview": preview,
                "lastMessageSender": sender_id,
                "lastMessageAt": now,
            },
        )

        logger.info(
            f"message_appended conversation_id={conversation_id} "
            f"message_id={message_id} type={record['type']}"
        )
        return {"id": message_id, **record}
