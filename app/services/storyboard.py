"""Scene director: pulls scene metadata out of persona replies and drives image generation."""

import re

from app.core.exceptions import ImageGenerationError, LeonardoApiError, SceneNotFoundError
from app.core.logging import get_logger
from app.repositories.base import SceneStore
from app.schemas.storyboard import Scene, SceneMetadata, SceneStatus
from app.services.leonardo import LeonardoClient
from app.services.personas import DEFAULT_MOOD, get_archetype, is_valid_mood

log = get_logger(__name__)

_SCENE_RE = re.compile(r"\[SCENE:\s*(.*?)\]", re.DOTALL)
_MOOD_RE = re.compile(r"\[MOOD:\s*(.*?)\]", re.DOTALL)
_THOUGHT_RE = re.compile(r"\[THOUGHT:\s*(.*?)\]", re.DOTALL)


def _last_match(pattern: re.Pattern[str], text: str) -> re.Match[str] | None:
    match = None
    for match in pattern.finditer(text):
        pass
    return match


def parse_scene_metadata(content: str) -> SceneMetadata:
    """Extract the last [SCENE:], [MOOD:] and [THOUGHT:] blocks and strip every block from the dialogue.

    An unrecognised mood is dropped rather than treated as an error.
    """
    scene_match = _last_match(_SCENE_RE, content)
    mood_match = _last_match(_MOOD_RE, content)
    thought_match = _last_match(_THOUGHT_RE, content)

    scene = scene_match.group(1).strip() or None if scene_match else None
    thought = thought_match.group(1).strip() or None if thought_match else None
    mood = None
    if mood_match:
        raw = mood_match.group(1).strip().lower()
        mood = raw if is_valid_mood(raw) else None

    dialogue = content
    for pattern in (_SCENE_RE, _MOOD_RE, _THOUGHT_RE):
        dialogue = pattern.sub("", dialogue)
    return SceneMetadata(dialogue=dialogue.strip(), scene=scene, mood=mood, thought=thought)


class SceneDirector:
    def __init__(self, store: SceneStore, leonardo: LeonardoClient | None = None):
        self.store = store
        self.leonardo = leonardo or LeonardoClient()

    async def create_scene(
        self,
        conversation_id: str,
        message_id: str | None,
        metadata: SceneMetadata,
        archetype_id: str,
    ) -> Scene:
        """Insert a `generating` scene and submit its image job.

        A failed submission marks the scene `failed` instead of raising.
        """
        log.info("scene.create_started", conversation_id=conversation_id, archetype_id=archetype_id)
        if not metadata.scene:
            raise ImageGenerationError("No scene description in metadata")
        archetype = get_archetype(archetype_id)
        if archetype is None:
            raise ImageGenerationError(f"Unknown archetype: {archetype_id}")

        scene = await self.store.create_scene(
            conversation_id,
            message_id,
            scene_description=metadata.scene,
            mood=metadata.mood or DEFAULT_MOOD,
            thought=metadata.thought,
            status=SceneStatus.GENERATING,
        )
        try:
            generation_id = await self.leonardo.create_generation(metadata.scene, archetype)
        except LeonardoApiError as e:
            log.error("scene.create_failed", scene_id=scene.id, error=e.message)
            return await self.store.update_scene(scene.id, status=SceneStatus.FAILED) or scene
        updated = await self.store.update_scene(scene.id, external_generation_id=generation_id)
        log.info("scene.create_completed", scene_id=scene.id, generation_id=generation_id)
        return updated or scene

    async def poll_and_update_scene(self, scene_id: str) -> Scene:
        log.info("scene.poll_started", scene_id=scene_id)
        scene = await self.store.find_scene(scene_id)
        if scene is None:
            raise SceneNotFoundError(scene_id)
        if scene.status.is_final or not scene.external_generation_id:
            return scene

        try:
            result = await self.leonardo.get_generation_result(scene.external_generation_id)
        except LeonardoApiError as e:
            log.error("scene.poll_failed", scene_id=scene_id, error=e.message)
            updated = await self.store.update_scene(scene_id, status=SceneStatus.FAILED)
            return updated or scene.model_copy(update={"status": SceneStatus.FAILED})

        updated = await self.store.update_scene(scene_id, status=result.status, image_url=result.image_url)
        log.info("scene.poll_completed", scene_id=scene_id, status=result.status.value)
        return updated or scene

    async def get_scene(self, scene_id: str) -> Scene:
        scene = await self.store.find_scene(scene_id)
        if scene is None:
            raise SceneNotFoundError(scene_id)
        return scene

    async def get_latest_scene(self, conversation_id: str) -> Scene | None:
        return await self.store.find_latest_scene(conversation_id)
