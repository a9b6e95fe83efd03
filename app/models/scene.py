from datetime import datetime

from beanie import Document
from pydantic import Field


class SceneDoc(Document):
    conversation_id: str
    message_id: str | None = None
    scene_description: str
    mood: str = "happy"
    thought: str | None = None
    image_url: str | None = None
    external_generation_id: str | None = None
    status: str = "pending"  # pending, generating, complete, failed
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "storyboard_scenes"
        indexes = [
            [("conversation_id", 1), ("created_at", -1)],
            [("status", 1)],
        ]
