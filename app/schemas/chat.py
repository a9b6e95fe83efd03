from datetime import datetime
from enum import Enum

from app.schemas import ApiModel


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Conversation(ApiModel):
    id: str
    title: str
    user_id: str | None = None
    created_at: datetime
    updated_at: datetime


class Message(ApiModel):
    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    updated_at: datetime
