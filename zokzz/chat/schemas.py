from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional

from zokzz.friendship.schemas import UserBrief


# Start conversation
class StartConversationModel(BaseModel):
    target_user_id: str

    @field_validator("target_user_id")
    @classmethod
    def strip_target(cls, value: str) -> str:
        return value.strip()


class StartConversationResponseModel(BaseModel):
    conversation_id: str


# Get Conversations
class ConversationData(BaseModel):
    id: str
    other_user: Optional[UserBrief] = None
    updated_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    last_message_sender: Optional[str] = None
    last_message_at: Optional[datetime] = None


class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationData]


# Messages
class ImageData(BaseModel):
    data: str
    mime_type: str
    size: int


class MessageItem(BaseModel):
    id: str
    sender_id: str
    type: str
    body: Optional[str] = None
    image: Optional[ImageData] = None
    created_at: datetime
    encoding: Optional[str] = None


class GetMessagesResponseModel(BaseModel):
    messages: List[MessageItem]


# Send Messages
class SendMessageModel(BaseModel):
    type: str = "text"
    body: Optional[str] = None
    image_data: Optional[str] = None
    image_mime_type: Optional[str] = None


class SendMessageResponseModel(BaseModel):
    message: MessageItem
