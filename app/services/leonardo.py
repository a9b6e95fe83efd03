"""Leonardo.ai image generation: submit a job, then poll it by generation id."""

from dataclasses import dataclass

import httpx

from app.core.config import Settings, get_settings
from app.core.exceptions import LeonardoApiError
from app.core.logging import get_logger
from app.schemas.storyboard import Archetype, SceneStatus
from app.services.personas import IMAGE_NEGATIVE_PROMPT, IMAGE_STYLE_PREFIX

log = get_logger(__name__)

FLUX_DEV_MODEL_ID = "b2614463-296c-462a-9586-aafdb8f00e36"
ILLUSTRATION_STYLE_UUID = "645e4195-f63d-4715-a3f2-3fb1e6eb8c70"

_REQUEST_TIMEOUT = 15.0


@dataclass
class GenerationResult:
    status: SceneStatus
    image_url: str | None = None


def build_image_prompt(scene_description: str, archetype: Archetype) -> str:
    return f"{IMAGE_STYLE_PREFIX} {archetype.visual_hint}, {scene_description}"


def map_generation_status(remote_status: str | None) -> SceneStatus:
    if remote_status == "COMPLETE":
        return SceneStatus.COMPLETE
    if remote_status == "FAILED":
        return SceneStatus.FAILED
    return SceneStatus.GENERATING


class LeonardoClient:
    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.leonardo_base_url,
            headers={"Authorization": f"Bearer {self.settings.leonardo_api_key}"},
            timeout=_REQUEST_TIMEOUT,
            transport=self._transport,
        )

    async def create_generation(self, scene_description: str, archetype: Archetype) -> str:
        """Submit a generation job; returns the external generation id."""
        prompt = build_image_prompt(scene_description, archetype)
        log.info("leonardo.generation_started", prompt=prompt[:100])
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/generations",
                    json={
                        "prompt": prompt,
                        "modelId": FLUX_DEV_MODEL_ID,
                        "styleUUID": ILLUSTRATION_STYLE_UUID,
                        "contrast": 4,
                        "width": 1024,
                        "height": 768,
                        "num_images": 1,
                        "guidance_scale": 7,
                        "negative_prompt": IMAGE_NEGATIVE_PROMPT,
                    },
                )
        except httpx.HTTPError as e:
            log.error("leonardo.fetch_failed", error=str(e))
            raise LeonardoApiError(f"Failed to connect: {e}") from e

        if resp.is_error:
            log.error("leonardo.api_error", status=resp.status_code, body=resp.text)
            raise LeonardoApiError(f"API error ({resp.status_code}): {resp.text}")

        generation_id = (resp.json().get("sdGenerationJob") or {}).get("generationId")
        if not generation_id:
            raise LeonardoApiError("No generationId returned")
        log.info("leonardo.generation_created", generation_id=generation_id)
        return generation_id

    async def get_generation_result(self, generation_id: str) -> GenerationResult:
        log.debug("leonardo.poll_started", generation_id=generation_id)
        try:
            async with self._client() as client:
                resp = await client.get(f"/generations/{generation_id}")
        except httpx.HTTPError as e:
            log.error("leonardo.poll_fetch_failed", generation_id=generation_id, error=str(e))
            raise LeonardoApiError(f"Failed to poll: {e}") from e

        if resp.is_error:
            log.error("leonardo.poll_error", generation_id=generation_id, status=resp.status_code)
            raise LeonardoApiError(f"Poll error ({resp.status_code}): {resp.text}")

        generation = resp.json().get("generations_by_pk") or {}
        images = generation.get("generated_images") or []
        image_url = images[0].get("url") if images else None
        status = map_generation_status(generation.get("status"))
        log.debug("leonardo.poll_completed", generation_id=generation_id, status=status.value, has_image=bool(image_url))
        return GenerationResult(status=status, image_url=image_url or None)
