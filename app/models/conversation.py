from datetime import datetime

from beanie import Document
from pydantic import Field


class ConversationDoc(Document):
    title: str
    user_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "chat_conversations"
        indexes = [[("user_id", 1), ("updated_at", -1)]]
