"""Store contracts. Services depend on these; Mongo implementations live in app.repositories.mongo."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from app.schemas.chat import Conversation, Message, MessageRole
from app.schemas.ledger import TokenBalance, TokenTransaction, TransactionType
from app.schemas.storyboard import Scene, SceneStatus


class LedgerStore(ABC):
    @abstractmethod
    async def get_balance(self, user_id: str) -> int | None:
        """Current balance, or None if the user has no balance row."""
        ...

    @abstractmethod
    async def initialize_balance(self, user_id: str, initial: int) -> TokenBalance:
        """Create the balance row; raises ConflictError if one already exists."""
        ...

    @abstractmethod
    async def credit_tokens(self, user_id: str, amount: int) -> int:
        """Atomic increment; raises NotFoundError without a balance row."""
        ...

    @abstractmethod
    async def debit_token(self, user_id: str) -> int | None:
        """Atomic decrement of exactly 1 guarded by balance > 0; None when the guard fails."""
        ...

    @abstractmethod
    async def record_transaction(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        balance_after: int,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> TokenTransaction:
        ...

    @abstractmethod
    async def list_transactions(self, user_id: str, limit: int, offset: int) -> list[TokenTransaction]:
        """Newest first."""
        ...

    @abstractmethod
    async def count_transactions(self, user_id: str) -> int:
        ...

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Unit of work grouping a balance mutation with its audit entry."""
        ...

    @abstractmethod
    async def claim_event(self, event_id: str, event_type: str) -> bool:
        """Record a webhook event id; False if it was already claimed."""
        ...

    @abstractmethod
    async def release_event(self, event_id: str) -> None:
        ...


class ConversationStore(ABC):
    @abstractmethod
    async def create_conversation(self, title: str, user_id: str | None = None) -> Conversation:
        ...

    @abstractmethod
    async def find_conversation(self, conversation_id: str) -> Conversation | None:
        ...

    @abstractmethod
    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """Most recently updated first."""
        ...

    @abstractmethod
    async def update_conversation(self, conversation_id: str, title: str) -> Conversation | None:
        ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete the conversation with its messages and scenes."""
        ...

    @abstractmethod
    async def create_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Oldest first."""
        ...


class SceneStore(ABC):
    @abstractmethod
    async def create_scene(
        self,
        conversation_id: str,
        message_id: str | None,
        scene_description: str,
        mood: str,
        thought: str | None,
        status: SceneStatus,
    ) -> Scene:
        ...

    @abstractmethod
    async def find_scene(self, scene_id: str) -> Scene | None:
        ...

    @abstractmethod
    async def find_latest_scene(self, conversation_id: str) -> Scene | None:
        ...

    @abstractmethod
    async def update_scene(
        self,
        scene_id: str,
        *,
        status: SceneStatus | None = None,
        image_url: str | None = None,
        external_generation_id: str | None = None,
    ) -> Scene | None:
        ...

    @abstractmethod
    async def list_scenes_by_status(self, status: SceneStatus, limit: int = 50) -> list[Scene]:
        ...
