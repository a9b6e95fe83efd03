"""Beanie-backed stores."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from beanie import UpdateResponse
from beanie.operators import Inc, Set
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.exceptions import ConflictError, NotFoundError
from app.db.init import get_client
from app.models.conversation import ConversationDoc
from app.models.message import MessageDoc
from app.models.processed_webhook_event import ProcessedWebhookEvent
from app.models.scene import SceneDoc
from app.models.token_balance import TokenBalanceDoc
from app.models.token_transaction import TokenTransactionDoc
from app.repositories.base import ConversationStore, LedgerStore, SceneStore
from app.schemas.chat import Conversation, Message, MessageRole
from app.schemas.ledger import TokenBalance, TokenTransaction, TransactionType
from app.schemas.storyboard import Scene, SceneStatus


def _as_dict(doc: Any) -> dict[str, Any]:
    return {**doc.model_dump(exclude={"id", "revision_id"}), "id": str(doc.id)}


def _valid_id(value: str) -> bool:
    return ObjectId.is_valid(value)


class MongoLedgerStore(LedgerStore):
    """Ledger on `token_balances` + `token_transactions`.

    The guarded debit and the credit are single find_one_and_update calls, so the
    balance is never read-modify-written in application code.
    """

    def __init__(self) -> None:
        self._session = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._session is not None or not get_settings().mongodb_transactions:
            yield
            return
        async with await get_client().start_session() as session:
            async with session.start_transaction():
                self._session = session
                try:
                    yield
                finally:
                    self._session = None

    async def get_balance(self, user_id: str) -> int | None:
        doc = await TokenBalanceDoc.find_one(TokenBalanceDoc.user_id == user_id, session=self._session)
        return doc.balance if doc else None

    async def initialize_balance(self, user_id: str, initial: int) -> TokenBalance:
        doc = TokenBalanceDoc(user_id=user_id, balance=initial)
        try:
            await doc.insert(session=self._session)
        except DuplicateKeyError as e:
            raise ConflictError("Token balance already initialised", details={"user_id": user_id}) from e
        return TokenBalance.model_validate(doc.model_dump())

    async def credit_tokens(self, user_id: str, amount: int) -> int:
        doc = await TokenBalanceDoc.find_one(TokenBalanceDoc.user_id == user_id, session=self._session).update(
            Inc({TokenBalanceDoc.balance: amount}),
            Set({TokenBalanceDoc.updated_at: datetime.utcnow()}),
            session=self._session,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if doc is None:
            raise NotFoundError("Failed to credit tokens: balance row not found")
        return doc.balance

    async def debit_token(self, user_id: str) -> int | None:
        doc = await TokenBalanceDoc.find_one(
            TokenBalanceDoc.user_id == user_id,
            TokenBalanceDoc.balance > 0,
            session=self._session,
        ).update(
            Inc({TokenBalanceDoc.balance: -1}),
            Set({TokenBalanceDoc.updated_at: datetime.utcnow()}),
            session=self._session,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        return doc.balance if doc else None

    async def record_transaction(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        balance_after: int,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> TokenTransaction:
        doc = TokenTransactionDoc(
            user_id=user_id,
            amount=amount,
            type=type.value,
            reference_id=reference_id,
            description=description,
            balance_after=balance_after,
        )
        await doc.insert(session=self._session)
        return TokenTransaction.model_validate(_as_dict(doc))

    async def list_transactions(self, user_id: str, limit: int, offset: int) -> list[TokenTransaction]:
        docs = (
            await TokenTransactionDoc.find(TokenTransactionDoc.user_id == user_id, session=self._session)
            .sort(-TokenTransactionDoc.created_at)
            .skip(offset)
            .limit(limit)
            .to_list()
        )
        return [TokenTransaction.model_validate(_as_dict(d)) for d in docs]

    async def count_transactions(self, user_id: str) -> int:
        return await TokenTransactionDoc.find(TokenTransactionDoc.user_id == user_id, session=self._session).count()

    async def claim_event(self, event_id: str, event_type: str) -> bool:
        # Upsert, so an existing marker does not raise and abort the surrounding transaction
        try:
            result = await ProcessedWebhookEvent.get_motor_collection().update_one(
                {"event_id": event_id},
                {"$setOnInsert": {"event_id": event_id, "event_type": event_type, "created_at": datetime.utcnow()}},
                upsert=True,
                session=self._session,
            )
        except DuplicateKeyError:
            return False
        return result.upserted_id is not None

    async def release_event(self, event_id: str) -> None:
        await ProcessedWebhookEvent.find(ProcessedWebhookEvent.event_id == event_id, session=self._session).delete()


class MongoConversationStore(ConversationStore):
    async def create_conversation(self, title: str, user_id: str | None = None) -> Conversation:
        doc = ConversationDoc(title=title, user_id=user_id)
        await doc.insert()
        return Conversation.model_validate(_as_dict(doc))

    async def find_conversation(self, conversation_id: str) -> Conversation | None:
        if not _valid_id(conversation_id):
            return None
        doc = await ConversationDoc.get(conversation_id)
        return Conversation.model_validate(_as_dict(doc)) if doc else None

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        docs = await ConversationDoc.find(ConversationDoc.user_id == user_id).sort(-ConversationDoc.updated_at).to_list()
        return [Conversation.model_validate(_as_dict(d)) for d in docs]

    async def update_conversation(self, conversation_id: str, title: str) -> Conversation | None:
        if not _valid_id(conversation_id):
            return None
        doc = await ConversationDoc.get(conversation_id)
        if not doc:
            return None
        doc.title = title
        doc.updated_at = datetime.utcnow()
        await doc.save()
        return Conversation.model_validate(_as_dict(doc))

    async def delete_conversation(self, conversation_id: str) -> bool:
        if not _valid_id(conversation_id):
            return False
        doc = await ConversationDoc.get(conversation_id)
        if not doc:
            return False
        await MessageDoc.find(MessageDoc.conversation_id == conversation_id).delete()
        await SceneDoc.find(SceneDoc.conversation_id == conversation_id).delete()
        await doc.delete()
        return True

    async def create_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        doc = MessageDoc(conversation_id=conversation_id, role=role.value, content=content)
        await doc.insert()
        await ConversationDoc.find_one(ConversationDoc.id == ObjectId(conversation_id)).update(
            Set({ConversationDoc.updated_at: doc.created_at})
        )
        return Message.model_validate(_as_dict(doc))

    async def list_messages(self, conversation_id: str) -> list[Message]:
        docs = await MessageDoc.find(MessageDoc.conversation_id == conversation_id).sort(+MessageDoc.created_at).to_list()
        return [Message.model_validate(_as_dict(d)) for d in docs]


class MongoSceneStore(SceneStore):
    async def create_scene(
        self,
        conversation_id: str,
        message_id: str | None,
        scene_description: str,
        mood: str,
        thought: str | None,
        status: SceneStatus,
    ) -> Scene:
        doc = SceneDoc(
            conversation_id=conversation_id,
            message_id=message_id,
            scene_description=scene_description,
            mood=mood,
            thought=thought,
            status=status.value,
        )
        await doc.insert()
        return Scene.model_validate(_as_dict(doc))

    async def find_scene(self, scene_id: str) -> Scene | None:
        if not _valid_id(scene_id):
            return None
        doc = await SceneDoc.get(scene_id)
        return Scene.model_validate(_as_dict(doc)) if doc else None

    async def find_latest_scene(self, conversation_id: str) -> Scene | None:
        doc = await SceneDoc.find(SceneDoc.conversation_id == conversation_id).sort(-SceneDoc.created_at).first_or_none()
        return Scene.model_validate(_as_dict(doc)) if doc else None

    async def update_scene(
        self,
        scene_id: str,
        *,
        status: SceneStatus | None = None,
        image_url: str | None = None,
        external_generation_id: str | None = None,
    ) -> Scene | None:
        if not _valid_id(scene_id):
            return None
        doc = await SceneDoc.get(scene_id)
        if not doc:
            return None
        if status is not None:
            doc.status = status.value
        if image_url is not None:
            doc.image_url = image_url
        if external_generation_id is not None:
            doc.external_generation_id = external_generation_id
        doc.updated_at = datetime.utcnow()
        await doc.save()
        return Scene.model_validate(_as_dict(doc))

    async def list_scenes_by_status(self, status: SceneStatus, limit: int = 50) -> list[Scene]:
        docs = await SceneDoc.find(SceneDoc.status == status.value).sort(+SceneDoc.created_at).limit(limit).to_list()
        return [Scene.model_validate(_as_dict(d)) for d in docs]
