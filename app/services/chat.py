"""Conversations and their messages."""

from app.core.exceptions import ConversationNotFoundError
from app.core.logging import get_logger
from app.repositories.base import ConversationStore
from app.schemas.chat import Conversation, Message, MessageRole

log = get_logger(__name__)

TITLE_MAX_CHARS = 50


def generate_title_from_message(content: str) -> str:
    trimmed = content.strip()
    if len(trimmed) <= TITLE_MAX_CHARS:
        return trimmed
    return f"{trimmed[:TITLE_MAX_CHARS]}..."


class ChatService:
    def __init__(self, store: ConversationStore):
        self.store = store

    async def create_conversation(self, title: str, user_id: str | None = None) -> Conversation:
        log.info("conversation.create_started", title=title, user_id=user_id)
        conversation = await self.store.create_conversation(title, user_id)
        log.info("conversation.create_completed", conversation_id=conversation.id)
        return conversation

    async def get_conversation(self, conversation_id: str, user_id: str | None = None) -> Conversation:
        """Load a conversation; one owned by another user is reported as missing."""
        conversation = await self.store.find_conversation(conversation_id)
        if conversation is None or (user_id is not None and conversation.user_id not in (None, user_id)):
            log.warning("conversation.get_failed", conversation_id=conversation_id)
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        return await self.store.list_conversations(user_id)

    async def update_conversation(self, conversation_id: str, title: str, user_id: str | None = None) -> Conversation:
        log.info("conversation.update_started", conversation_id=conversation_id)
        await self.get_conversation(conversation_id, user_id)
        updated = await self.store.update_conversation(conversation_id, title)
        if updated is None:
            log.warning("conversation.update_failed", conversation_id=conversation_id)
            raise ConversationNotFoundError(conversation_id)
        log.info("conversation.update_completed", conversation_id=conversation_id)
        return updated

    async def delete_conversation(self, conversation_id: str, user_id: str | None = None) -> None:
        log.info("conversation.delete_started", conversation_id=conversation_id)
        await self.get_conversation(conversation_id, user_id)
        if not await self.store.delete_conversation(conversation_id):
            log.warning("conversation.delete_failed", conversation_id=conversation_id)
            raise ConversationNotFoundError(conversation_id)
        log.info("conversation.delete_completed", conversation_id=conversation_id)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        messages = await self.store.list_messages(conversation_id)
        log.info("messages.get_completed", conversation_id=conversation_id, count=len(messages))
        return messages

    async def add_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        message = await self.store.create_message(conversation_id, role, content)
        log.info("message.add_completed", conversation_id=conversation_id, message_id=message.id, role=role.value)
        return message
