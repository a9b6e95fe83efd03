from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from pydantic import Field

from app.deps import Identity, get_chat_service, get_identity, get_turn_settlement
from app.schemas import ApiModel
from app.schemas.chat import MessageRole
from app.services.chat import ChatService
from app.services.settlement import TurnSettlement

router = APIRouter()


class SendMessageRequest(ApiModel):
    content: str
    conversation_id: str | None = None
    archetype_id: str | None = None


class ConversationCreateRequest(ApiModel):
    title: str = Field(min_length=1, max_length=200)


class ConversationUpdateRequest(ApiModel):
    title: str = Field(min_length=1, max_length=200)


class MessageCreateRequest(ApiModel):
    role: MessageRole
    content: str = Field(min_length=1)


@router.post("/send")
async def send_message(
    body: SendMessageRequest,
    user: Identity = Depends(get_identity),
    settlement: TurnSettlement = Depends(get_turn_settlement),
):
    """Debit one token and stream the assistant reply as server-sent events."""
    turn = await settlement.begin(user.id, body.content, body.conversation_id, body.archetype_id)
    completion = await settlement.open_stream(turn)
    return StreamingResponse(
        settlement.relay_detached(turn, completion),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Conversation-Id": turn.conversation_id,
            "X-Token-Balance": str(turn.balance),
        },
    )


@router.post("/conversations", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: ConversationCreateRequest,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    conversation = await chat.create_conversation(body.title, user.id)
    return conversation.to_json()


@router.get("/conversations")
async def list_conversations(
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    """Own conversations, most recently active first."""
    conversations = await chat.list_conversations(user.id)
    return {"conversations": [c.to_json() for c in conversations]}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    conversation = await chat.get_conversation(conversation_id, user.id)
    return conversation.to_json()


@router.patch("/conversations/{conversation_id}")
async def rename_conversation(
    conversation_id: str,
    body: ConversationUpdateRequest,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    conversation = await chat.update_conversation(conversation_id, body.title, user.id)
    return conversation.to_json()


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    """Delete a conversation with its messages and scenes."""
    await chat.delete_conversation(conversation_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    await chat.get_conversation(conversation_id, user.id)
    messages = await chat.get_messages(conversation_id)
    return {"messages": [m.to_json() for m in messages]}


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def add_message(
    conversation_id: str,
    body: MessageCreateRequest,
    user: Identity = Depends(get_identity),
    chat: ChatService = Depends(get_chat_service),
):
    await chat.get_conversation(conversation_id, user.id)
    message = await chat.add_message(conversation_id, body.role, body.content)
    return message.to_json()
