"""Scene metadata parsing, the scene director and the polling cron."""

import pytest

from app.core.exceptions import ImageGenerationError, SceneNotFoundError
from app.schemas.storyboard import SceneMetadata, SceneStatus
from app.services.leonardo import GenerationResult, build_image_prompt, map_generation_status
from app.services.personas import ARCHETYPES, MOODS, build_date_night_prompt, default_scene, get_archetype
from app.services.storyboard import parse_scene_metadata
from app.worker.cron import run_poll_generating_scenes


def test_parse_all_three_tags():
    meta = parse_scene_metadata(
        "  Nice to meet you!\n[SCENE: A rooftop bar at dusk]\n[MOOD:  FLIRTY ]\n[THOUGHT: Nailed it.]  "
    )
    assert meta == SceneMetadata(
        dialogue="Nice to meet you!",
        scene="A rooftop bar at dusk",
        mood="flirty",
        thought="Nailed it.",
    )


def test_parse_unknown_mood_is_dropped():
    meta = parse_scene_metadata("Hmm.\n[MOOD: melancholic]")
    assert meta.mood is None
    assert meta.dialogue == "Hmm."


def test_parse_without_tags():
    assert parse_scene_metadata("Just words.") == SceneMetadata(dialogue="Just words.")


def test_parse_uses_last_block_and_strips_every_block():
    meta = parse_scene_metadata("[SCENE: first]Hi [SCENE: second] there\n[MOOD: bored][MOOD: charmed]")
    assert meta.scene == "second"
    assert meta.mood == "charmed"
    assert meta.dialogue == "Hi  there"


def test_catalog():
    assert len(ARCHETYPES) == 8
    assert len({a.id for a in ARCHETYPES}) == 8
    assert "happy" in MOODS
    assert get_archetype("art-girl").gender == "female"
    assert get_archetype("nope") is None
    assert get_archetype(None) is None


def test_prompt_and_default_scene_mention_persona():
    archetype = get_archetype("foodie-king")
    prompt = build_date_night_prompt(archetype)
    assert archetype.name in prompt
    assert "[SCENE:" in prompt and "[MOOD:" in prompt and "[THOUGHT:" in prompt
    assert default_scene(archetype).endswith(archetype.visual_hint)
    assert archetype.visual_hint in build_image_prompt("a table", archetype)


@pytest.mark.parametrize(
    "remote,expected",
    [("COMPLETE", SceneStatus.COMPLETE), ("FAILED", SceneStatus.FAILED), ("PENDING", SceneStatus.GENERATING), (None, SceneStatus.GENERATING)],
)
def test_map_generation_status(remote, expected):
    assert map_generation_status(remote) == expected


@pytest.mark.asyncio
async def test_create_scene_requires_description(director):
    with pytest.raises(ImageGenerationError):
        await director.create_scene("c1", "m1", SceneMetadata(dialogue="hi"), "gym-bro")


@pytest.mark.asyncio
async def test_create_scene_requires_known_archetype(director, scene_store):
    with pytest.raises(ImageGenerationError):
        await director.create_scene("c1", "m1", SceneMetadata(dialogue="hi", scene="park"), "ghost")
    assert scene_store.scenes == {}


@pytest.mark.asyncio
async def test_poll_completes_scene(director, leonardo):
    scene = await director.create_scene("c1", "m1", SceneMetadata(dialogue="hi", scene="park", mood="nervous"), "cat-mom")
    assert scene.mood == "nervous"

    leonardo.results[scene.external_generation_id] = GenerationResult(SceneStatus.COMPLETE, "https://cdn.example/img.png")
    polled = await director.poll_and_update_scene(scene.id)
    assert polled.status == SceneStatus.COMPLETE
    assert polled.image_url == "https://cdn.example/img.png"

    # final scenes are returned as-is without another remote call
    leonardo.fail_poll = True
    assert (await director.poll_and_update_scene(scene.id)).status == SceneStatus.COMPLETE


@pytest.mark.asyncio
async def test_poll_error_marks_scene_failed(director, leonardo):
    scene = await director.create_scene("c1", None, SceneMetadata(dialogue="hi", scene="park"), "cat-mom")
    leonardo.fail_poll = True
    assert (await director.poll_and_update_scene(scene.id)).status == SceneStatus.FAILED


@pytest.mark.asyncio
async def test_poll_missing_scene(director):
    with pytest.raises(SceneNotFoundError):
        await director.poll_and_update_scene("missing")


@pytest.mark.asyncio
async def test_latest_scene_is_newest(director):
    await director.create_scene("c1", None, SceneMetadata(dialogue="", scene="coffee"), "gym-girl")
    newest = await director.create_scene("c1", None, SceneMetadata(dialogue="", scene="park"), "gym-girl")
    assert (await director.get_latest_scene("c1")).id == newest.id
    assert await director.get_latest_scene("c2") is None


@pytest.mark.asyncio
async def test_cron_polls_generating_scenes(director, leonardo, scene_store):
    done = await director.create_scene("c1", None, SceneMetadata(dialogue="", scene="coffee"), "gym-bro")
    pending = await director.create_scene("c1", None, SceneMetadata(dialogue="", scene="park"), "gym-bro")
    leonardo.results[done.external_generation_id] = GenerationResult(SceneStatus.COMPLETE, "https://cdn.example/a.png")

    assert await run_poll_generating_scenes(director) == 1
    assert scene_store.scenes[done.id].status == SceneStatus.COMPLETE
    assert scene_store.scenes[pending.id].status == SceneStatus.GENERATING
