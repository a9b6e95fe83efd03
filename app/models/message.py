from datetime import datetime

from beanie import Document
from pydantic import Field


class MessageDoc(Document):
    conversation_id: str
    role: str  # user | assistant
    content: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "chat_messages"
        indexes = [[("conversation_id", 1), ("created_at", 1)]]
