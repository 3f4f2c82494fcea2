from dataclasses import dataclass
from enum import Enum
from typing import Optional


CONVERSATIONS_PATH = "conversations"
USER_CONVERSATIONS_PATH = "userConversations"
MESSAGES_PATH = "messages"

FETCH_LIMIT = 100
PREVIEW_LENGTH = 120
IMAGE_PREVIEW = "Sent an image"
TEXT_ENCODING = "utf-8"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


def get_conversation_id(user_a: str, user_b: str) -> str:
    return "__".join(sorted([user_a, user_b]))


@dataclass
class MessageDraft:
    """What a sender submits; validated by ConversationLog.append_message."""

    type: str = MessageType.TEXT.value
    body: Optional[str] = None
    image_data: Optional[str] = None
    image_mime_type: Optional[str] = None
