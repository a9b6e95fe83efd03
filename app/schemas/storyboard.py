from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.schemas import ApiModel


class SceneStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self in (SceneStatus.COMPLETE, SceneStatus.FAILED)


class Scene(ApiModel):
    id: str
    conversation_id: str
    message_id: str | None = None
    scene_description: str
    mood: str
    thought: str | None = None
    image_url: str | None = None
    external_generation_id: str | None = None
    status: SceneStatus
    created_at: datetime
    updated_at: datetime

    def public(self) -> dict:
        """Fields exposed to the storyboard viewport."""
        return {
            "id": self.id,
            "mood": self.mood,
            "thought": self.thought,
            "imageUrl": self.image_url,
            "status": self.status.value,
            "sceneDescription": self.scene_description,
        }


@dataclass
class SceneMetadata:
    dialogue: str
    scene: str | None = None
    mood: str | None = None
    thought: str | None = None


class Archetype(ApiModel):
    id: str
    name: str
    tagline: str
    emoji: str
    gender: str
    personality: str
    visual_hint: str
