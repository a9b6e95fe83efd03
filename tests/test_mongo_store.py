"""Beanie-backed stores against an in-process mongomock database."""

import pytest
import pytest_asyncio
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from app.core.exceptions import ConflictError, NotFoundError
from app.db.init import DOCUMENT_MODELS
from app.repositories.mongo import MongoConversationStore, MongoLedgerStore, MongoSceneStore
from app.schemas.chat import MessageRole
from app.schemas.ledger import TransactionType
from app.schemas.storyboard import SceneStatus

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def mongo_db():
    client = AsyncMongoMockClient()
    await init_beanie(database=client["storyboard_chat_test"], document_models=DOCUMENT_MODELS)
    yield client


@pytest.fixture
def store(mongo_db) -> MongoLedgerStore:
    return MongoLedgerStore()


async def test_guarded_debit(store):
    await store.initialize_balance("u1", 2)

    assert await store.debit_token("u1") == 1
    assert await store.debit_token("u1") == 0
    assert await store.debit_token("u1") is None
    assert await store.get_balance("u1") == 0


async def test_debit_without_row(store):
    assert await store.debit_token("ghost") is None
    assert await store.get_balance("ghost") is None


async def test_credit(store):
    await store.initialize_balance("u1", 0)
    assert await store.credit_tokens("u1", 50) == 50
    assert await store.credit_tokens("u1", 1) == 51


async def test_credit_without_row(store):
    with pytest.raises(NotFoundError):
        await store.credit_tokens("ghost", 5)


async def test_duplicate_initialize_conflicts(store):
    first = await store.initialize_balance("u1", 10)
    assert first.balance == 10
    with pytest.raises(ConflictError):
        await store.initialize_balance("u1", 10)
    assert await store.get_balance("u1") == 10


async def test_claim_event_once(store):
    assert await store.claim_event("ev_1", "payment_succeeded") is True
    assert await store.claim_event("ev_1", "payment_succeeded") is False

    await store.release_event("ev_1")
    assert await store.claim_event("ev_1", "payment_succeeded") is True


async def test_transactions_listed_and_counted(store):
    await store.initialize_balance("u1", 3)
    for balance_after in (2, 1, 0):
        await store.record_transaction("u1", -1, TransactionType.CONSUMPTION, balance_after, reference_id="c1")
    await store.record_transaction("u2", 5, TransactionType.PURCHASE, 5, reference_id="inv-1")

    assert await store.count_transactions("u1") == 3
    page = await store.list_transactions("u1", limit=2, offset=0)
    assert len(page) == 2
    assert all(t.type == TransactionType.CONSUMPTION and t.reference_id == "c1" for t in page)
    assert len(await store.list_transactions("u1", limit=2, offset=2)) == 1


async def test_unit_of_work_without_replica_set(store):
    async with store.transaction():
        await store.initialize_balance("u1", 1)
        async with store.transaction():
            assert await store.debit_token("u1") == 0


async def test_conversation_store_round_trip(mongo_db):
    conversations = MongoConversationStore()
    scenes = MongoSceneStore()

    conversation = await conversations.create_conversation("Trip", "u1")
    await conversations.create_message(conversation.id, MessageRole.USER, "hi")
    await conversations.create_message(conversation.id, MessageRole.ASSISTANT, "hello")
    await scenes.create_scene(conversation.id, None, "park", "happy", None, SceneStatus.GENERATING)

    assert [m.role for m in await conversations.list_messages(conversation.id)] == [
        MessageRole.USER,
        MessageRole.ASSISTANT,
    ]
    assert [c.id for c in await conversations.list_conversations("u1")] == [conversation.id]
    assert await conversations.find_conversation("not-an-object-id") is None

    assert await conversations.delete_conversation(conversation.id) is True
    assert await conversations.list_messages(conversation.id) == []
    assert await scenes.find_latest_scene(conversation.id) is None
    assert await conversations.delete_conversation(conversation.id) is False


async def test_scene_store_updates(mongo_db):
    scenes = MongoSceneStore()
    scene = await scenes.create_scene("c1", "m1", "coffee", "nervous", "hm", SceneStatus.GENERATING)

    assert [s.id for s in await scenes.list_scenes_by_status(SceneStatus.GENERATING)] == [scene.id]
    updated = await scenes.update_scene(scene.id, status=SceneStatus.COMPLETE, image_url="https://cdn.example/x.png")
    assert updated.status == SceneStatus.COMPLETE
    assert updated.image_url == "https://cdn.example/x.png"
    assert await scenes.list_scenes_by_status(SceneStatus.GENERATING) == []
    assert await scenes.update_scene("missing") is None
