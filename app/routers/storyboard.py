from fastapi import APIRouter, Depends

from app.deps import Identity, get_chat_service, get_identity, get_scene_director
from app.services.chat import ChatService
from app.services.personas import ARCHETYPES
from app.services.storyboard import SceneDirector

router = APIRouter()


@router.get("/archetypes")
async def list_archetypes():
    return {"archetypes": [a.to_json() for a in ARCHETYPES]}


@router.get("/conversations/{conversation_id}/latest")
async def latest_scene(
    conversation_id: str,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
    director: SceneDirector = Depends(get_scene_director),
):
    """Most recent scene for the viewport, or null before the first one."""
    await chat.get_conversation(conversation_id, user.id)
    scene = await director.get_latest_scene(conversation_id)
    return {"scene": scene.public() if scene else None}


@router.post("/scenes/{scene_id}/poll")
async def poll_scene(
    scene_id: str,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
    director: SceneDirector = Depends(get_scene_director),
):
    scene = await director.get_scene(scene_id)
    await chat.get_conversation(scene.conversation_id, user.id)
    scene = await director.poll_and_update_scene(scene_id)
    return {"scene": scene.public()}
