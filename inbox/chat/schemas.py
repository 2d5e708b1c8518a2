from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import List, Optional


class ProfileData(BaseModel):
    user_id: UUID
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class MessageData(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    media_url: Optional[str] = None
    media_type: str = "text"
    created_at: datetime
    sender: Optional[ProfileData] = None


# Direct conversations
class CreateDirectConversationModel(BaseModel):
    other_user_id: UUID


class CreateDirectConversationResponseModel(BaseModel):
    conversation_id: UUID
    is_new: bool


# Send messages
class SendMessageModel(BaseModel):
    conversation_id: UUID
    content: str = ""
    media_url: Optional[str] = None
    media_type: str = "text"


class SendMessageResponseModel(BaseModel):
    message: MessageData


# Get conversations
class ConversationData(BaseModel):
    id: UUID
    is_group: bool
    created_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    participant_ids: List[UUID]
    participants: List[ProfileData] = []
    last_read_at: Optional[datetime] = None
    last_message: Optional[MessageData] = None
    unread_count: int = 0


class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationData]


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[MessageData]


# Mark read
class MarkReadResponseModel(BaseModel):
    conversation_id: UUID
    last_read_at: datetime
