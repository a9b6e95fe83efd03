"""Cron: settle scenes whose image generation is still running."""

from app.core.logging import get_logger
from app.db.init import init_db
from app.repositories.mongo import MongoSceneStore
from app.schemas.storyboard import SceneStatus
from app.services.storyboard import SceneDirector

log = get_logger(__name__)

POLL_BATCH_SIZE = 50


async def run_poll_generating_scenes(director: SceneDirector | None = None) -> int:
    """Poll every `generating` scene once (oldest first). Returns how many reached a final status."""
    if director is None:
        await init_db()
        director = SceneDirector(MongoSceneStore())
    scenes = await director.store.list_scenes_by_status(SceneStatus.GENERATING, limit=POLL_BATCH_SIZE)
    if scenes:
        log.info("poll_generating_scenes", count=len(scenes))
    settled = 0
    for scene in scenes:
        try:
            updated = await director.poll_and_update_scene(scene.id)
        except Exception as e:
            # One bad scene must not starve the rest of the batch
            log.exception("scene.poll_crashed", scene_id=scene.id, error=str(e))
            continue
        if updated.status.is_final:
            settled += 1
    return settled
