"""Chat turn settlement.

A turn is a saga: resolve the conversation, debit one token, save the user's
message, stream the completion, then either persist the reply (the token is
kept) or refund the token. The refund is the only compensating action; the
conversation and the user's message survive a failed turn.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from app.core.exceptions import StreamError, ValidationError
from app.core.logging import get_logger
from app.schemas.chat import MessageRole
from app.schemas.storyboard import Archetype
from app.services.chat import ChatService, generate_title_from_message
from app.services.completion import CompletionGateway, CompletionStream, sse_frame
from app.services.ledger import LedgerService
from app.services.personas import build_date_night_prompt, default_scene, get_archetype
from app.services.storyboard import SceneDirector, parse_scene_metadata

log = get_logger(__name__)

MAX_CONTENT_CHARS = 10_000

REFUND_MESSAGE = "Your token has been refunded"
ERROR_MESSAGE = "Failed to generate response"

# Relay tasks outlive the client connection; keep references until they finish
_relay_tasks: set[asyncio.Task] = set()


class TurnState(str, Enum):
    CREATED = "created"
    DEBITING = "debiting"
    USER_MSG_SAVED = "user_msg_saved"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Turn:
    user_id: str
    content: str
    conversation_id: str | None = None
    archetype: Archetype | None = None
    state: TurnState = TurnState.CREATED
    balance: int | None = None
    refunded: bool = False

    def advance(self, state: TurnState) -> None:
        log.debug("turn.transition", conversation_id=self.conversation_id, src=self.state.value, dst=state.value)
        self.state = state
        if state in (TurnState.COMPLETED, TurnState.FAILED):
            log.info(
                "turn.settled",
                user_id=self.user_id,
                conversation_id=self.conversation_id,
                state=state.value,
                refunded=self.refunded,
                balance=self.balance,
            )


class TurnSettlement:
    def __init__(
        self,
        chat: ChatService,
        ledger: LedgerService,
        gateway: CompletionGateway,
        director: SceneDirector,
    ):
        self.chat = chat
        self.ledger = ledger
        self.gateway = gateway
        self.director = director

    async def begin(
        self,
        user_id: str,
        content: str,
        conversation_id: str | None = None,
        archetype_id: str | None = None,
    ) -> Turn:
        """Created -> Debiting -> UserMsgSaved. InsufficientTokensError leaves no message behind."""
        if not content.strip():
            raise ValidationError("Content must not be blank", details={"fields": {"content": ["blank"]}})
        if len(content) > MAX_CONTENT_CHARS:
            raise ValidationError(
                f"Content must be at most {MAX_CONTENT_CHARS} characters",
                details={"fields": {"content": ["too long"]}},
            )
        archetype = get_archetype(archetype_id)
        if archetype_id and archetype is None:
            raise ValidationError(f"Unknown archetype: {archetype_id}", details={"fields": {"archetypeId": ["unknown"]}})

        turn = Turn(user_id=user_id, content=content, archetype=archetype)
        if conversation_id:
            conversation = await self.chat.get_conversation(conversation_id, user_id)
        else:
            title = f"Date: {archetype.name}" if archetype else generate_title_from_message(content)
            conversation = await self.chat.create_conversation(title, user_id)
            log.info("chat.conversation_created", conversation_id=conversation.id, archetype_id=archetype_id)
        turn.conversation_id = conversation.id

        turn.advance(TurnState.DEBITING)
        turn.balance = await self.ledger.consume_token(user_id, conversation.id)

        try:
            await self.chat.add_message(conversation.id, MessageRole.USER, content)
        except Exception:
            await self._refund(turn)
            turn.advance(TurnState.FAILED)
            raise
        turn.advance(TurnState.USER_MSG_SAVED)
        return turn

    async def open_stream(self, turn: Turn) -> CompletionStream:
        """UserMsgSaved -> Streaming. Any failure before the first byte refunds and re-raises."""
        try:
            history = await self.chat.get_messages(turn.conversation_id)
            system_prompt = build_date_night_prompt(turn.archetype) if turn.archetype else None
            completion = await self.gateway.stream_chat_completion(history, system_prompt)
        except Exception:
            await self._refund(turn)
            turn.advance(TurnState.FAILED)
            raise
        turn.advance(TurnState.STREAMING)
        return completion

    async def run(self, turn: Turn, completion: CompletionStream) -> AsyncIterator[bytes]:
        """Relay upstream frames, then settle and yield the trailer frames."""
        try:
            async for frame in completion.frames():
                yield frame
        except StreamError:
            # full_response carries the same failure
            pass

        try:
            full_text = await completion.full_response
        except StreamError as e:
            log.error("chat.stream_failed", conversation_id=turn.conversation_id, error=e.message)
            full_text = ""

        if full_text.strip():
            try:
                yield await self._complete(turn, full_text)
                return
            except Exception as e:
                log.exception("chat.assistant_message_save_failed", conversation_id=turn.conversation_id, error=str(e))
        else:
            log.warning("chat.empty_response", conversation_id=turn.conversation_id)

        if await self._refund(turn):
            yield sse_frame({"type": "refund", "message": REFUND_MESSAGE})
        turn.advance(TurnState.FAILED)
        yield sse_frame({"type": "error", "message": ERROR_MESSAGE})

    def relay_detached(self, turn: Turn, completion: CompletionStream) -> AsyncIterator[bytes]:
        """Run the turn in its own task and return an iterator over its frames.

        A client that disconnects only stops reading; the upstream read, the
        assistant message and the settlement still complete.
        """
        queue: asyncio.Queue[bytes | None] = asyncio.Queue()

        async def pump() -> None:
            try:
                async for frame in self.run(turn, completion):
                    queue.put_nowait(frame)
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(pump())
        _relay_tasks.add(task)
        task.add_done_callback(_on_relay_done)

        async def drain() -> AsyncIterator[bytes]:
            while (frame := await queue.get()) is not None:
                yield frame

        return drain()

    async def _complete(self, turn: Turn, full_text: str) -> bytes:
        metadata = parse_scene_metadata(full_text) if turn.archetype else None
        dialogue = metadata.dialogue if metadata else full_text

        message = await self.chat.add_message(turn.conversation_id, MessageRole.ASSISTANT, dialogue)
        log.info("chat.assistant_message_saved", conversation_id=turn.conversation_id, message_id=message.id)
        turn.advance(TurnState.COMPLETED)

        payload = {"type": "done", "saved": True}
        if metadata is not None:
            if not metadata.scene:
                metadata.scene = default_scene(turn.archetype)
            scene_id = None
            try:
                scene = await self.director.create_scene(turn.conversation_id, message.id, metadata, turn.archetype.id)
                scene_id = scene.id
                log.info("chat.scene_created", conversation_id=turn.conversation_id, scene_id=scene_id)
            except Exception as e:
                log.error("chat.scene_creation_failed", conversation_id=turn.conversation_id, error=str(e))
            payload["scene"] = {"mood": metadata.mood, "thought": metadata.thought, "sceneId": scene_id}
        return sse_frame(payload)

    async def _refund(self, turn: Turn) -> bool:
        try:
            turn.balance = await self.ledger.refund_token(turn.user_id, turn.conversation_id)
        except Exception as e:
            log.exception("chat.refund_failed", conversation_id=turn.conversation_id, error=str(e))
            return False
        turn.refunded = True
        return True


def _on_relay_done(task: asyncio.Task) -> None:
    _relay_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        log.error("chat.relay_crashed", error=str(task.exception()))
