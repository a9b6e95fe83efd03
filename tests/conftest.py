import os
import uuid
from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable

import httpx
import orjson
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use test DB; nothing below connects to it
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "storyboard_chat_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key")
os.environ.setdefault("CHARGEBEE_SITE", "acme-test")
os.environ.setdefault("CHARGEBEE_API_KEY", "test-chargebee-key")
os.environ.setdefault("CHARGEBEE_WEBHOOK_USERNAME", "hook")
os.environ.setdefault("CHARGEBEE_WEBHOOK_PASSWORD", "hook-secret")

from app.core.exceptions import ConflictError, LeonardoApiError, NotFoundError  # noqa: E402
from app.repositories.base import ConversationStore, LedgerStore, SceneStore  # noqa: E402
from app.schemas.chat import Conversation, Message, MessageRole  # noqa: E402
from app.schemas.ledger import TokenBalance, TokenTransaction, TransactionType  # noqa: E402
from app.schemas.storyboard import Archetype, Scene, SceneStatus  # noqa: E402
from app.services.leonardo import GenerationResult  # noqa: E402

TEST_USER_ID = "user-1"
TEST_USER_EMAIL = "user@example.com"


class _Clock:
    """Strictly increasing timestamps so newest-first ordering is deterministic."""

    def __init__(self) -> None:
        self._now = datetime(2026, 1, 1)

    def __call__(self) -> datetime:
        self._now += timedelta(milliseconds=1)
        return self._now


class InMemoryLedgerStore(LedgerStore):
    """Ledger with rollback on a failed unit of work."""

    def __init__(self) -> None:
        self.clock = _Clock()
        self.balances: dict[str, TokenBalance] = {}
        self.transactions: list[TokenTransaction] = []
        self.events: dict[str, str] = {}
        self.fail_credit = False
        self.fail_record = False
        self._depth = 0

    @asynccontextmanager
    async def transaction(self):
        if self._depth:
            yield
            return
        snapshot = (deepcopy(self.balances), list(self.transactions), dict(self.events))
        self._depth += 1
        try:
            yield
        except BaseException:
            self.balances, self.transactions, self.events = snapshot
            raise
        finally:
            self._depth -= 1

    async def get_balance(self, user_id):
        row = self.balances.get(user_id)
        return row.balance if row else None

    async def initialize_balance(self, user_id, initial):
        if user_id in self.balances:
            raise ConflictError("Token balance already initialised")
        now = self.clock()
        row = TokenBalance(user_id=user_id, balance=initial, created_at=now, updated_at=now)
        self.balances[user_id] = row
        return row

    async def credit_tokens(self, user_id, amount):
        if self.fail_credit:
            raise RuntimeError("ledger unavailable")
        row = self.balances.get(user_id)
        if row is None:
            raise NotFoundError("Failed to credit tokens: balance row not found")
        row.balance += amount
        row.updated_at = self.clock()
        return row.balance

    async def debit_token(self, user_id):
        row = self.balances.get(user_id)
        if row is None or row.balance <= 0:
            return None
        row.balance -= 1
        row.updated_at = self.clock()
        return row.balance

    async def record_transaction(self, user_id, amount, type, balance_after, reference_id=None, description=None):
        if self.fail_record:
            raise RuntimeError("audit write failed")
        tx = TokenTransaction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            amount=amount,
            type=type,
            reference_id=reference_id,
            description=description,
            balance_after=balance_after,
            created_at=self.clock(),
        )
        self.transactions.append(tx)
        return tx

    async def list_transactions(self, user_id, limit, offset):
        own = sorted((t for t in self.transactions if t.user_id == user_id), key=lambda t: t.created_at, reverse=True)
        return own[offset:offset + limit]

    async def count_transactions(self, user_id):
        return sum(1 for t in self.transactions if t.user_id == user_id)

    async def claim_event(self, event_id, event_type):
        if event_id in self.events:
            return False
        self.events[event_id] = event_type
        return True

    async def release_event(self, event_id):
        self.events.pop(event_id, None)

    def of_type(self, user_id: str, type: TransactionType) -> list[TokenTransaction]:
        return [t for t in self.transactions if t.user_id == user_id and t.type == type]


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self.clock = _Clock()
        self.conversations: dict[str, Conversation] = {}
        self.messages: list[Message] = []
        self.fail_roles: set[MessageRole] = set()
        self.fail_history = False
        self.scenes: "InMemorySceneStore | None" = None

    async def create_conversation(self, title, user_id=None):
        now = self.clock()
        conversation = Conversation(id=uuid.uuid4().hex, title=title, user_id=user_id, created_at=now, updated_at=now)
        self.conversations[conversation.id] = conversation
        return conversation

    async def find_conversation(self, conversation_id):
        return self.conversations.get(conversation_id)

    async def list_conversations(self, user_id):
        own = [c for c in self.conversations.values() if c.user_id == user_id]
        return sorted(own, key=lambda c: c.updated_at, reverse=True)

    async def update_conversation(self, conversation_id, title):
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.updated_at = self.clock()
        return conversation

    async def delete_conversation(self, conversation_id):
        if self.conversations.pop(conversation_id, None) is None:
            return False
        self.messages = [m for m in self.messages if m.conversation_id != conversation_id]
        if self.scenes is not None:
            self.scenes.scenes = {k: s for k, s in self.scenes.scenes.items() if s.conversation_id != conversation_id}
        return True

    async def create_message(self, conversation_id, role, content):
        if role in self.fail_roles:
            raise RuntimeError(f"failed to save {role.value} message")
        now = self.clock()
        message = Message(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=now,
            updated_at=now,
        )
        self.messages.append(message)
        if conversation_id in self.conversations:
            self.conversations[conversation_id].updated_at = now
        return message

    async def list_messages(self, conversation_id):
        if self.fail_history:
            raise RuntimeError("failed to load history")
        return [m for m in self.messages if m.conversation_id == conversation_id]

    def roles(self, conversation_id: str) -> list[MessageRole]:
        return [m.role for m in self.messages if m.conversation_id == conversation_id]


class InMemorySceneStore(SceneStore):
    def __init__(self) -> None:
        self.clock = _Clock()
        self.scenes: dict[str, Scene] = {}

    async def create_scene(self, conversation_id, message_id, scene_description, mood, thought, status):
        now = self.clock()
        scene = Scene(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            message_id=message_id,
            scene_description=scene_description,
            mood=mood,
            thought=thought,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.scenes[scene.id] = scene
        return scene

    async def find_scene(self, scene_id):
        return self.scenes.get(scene_id)

    async def find_latest_scene(self, conversation_id):
        own = [s for s in self.scenes.values() if s.conversation_id == conversation_id]
        return max(own, key=lambda s: s.created_at, default=None)

    async def update_scene(self, scene_id, *, status=None, image_url=None, external_generation_id=None):
        scene = self.scenes.get(scene_id)
        if scene is None:
            return None
        changes = {"updated_at": self.clock()}
        if status is not None:
            changes["status"] = status
        if image_url is not None:
            changes["image_url"] = image_url
        if external_generation_id is not None:
            changes["external_generation_id"] = external_generation_id
        self.scenes[scene_id] = scene.model_copy(update=changes)
        return self.scenes[scene_id]

    async def list_scenes_by_status(self, status, limit=50):
        matching = sorted((s for s in self.scenes.values() if s.status == status), key=lambda s: s.created_at)
        return matching[:limit]


class FakeLeonardo:
    """Stands in for LeonardoClient; records submitted prompts."""

    def __init__(self) -> None:
        self.submitted: list[tuple[str, str]] = []
        self.results: dict[str, GenerationResult] = {}
        self.fail_create = False
        self.fail_poll = False

    async def create_generation(self, scene_description: str, archetype: Archetype) -> str:
        if self.fail_create:
            raise LeonardoApiError("API error (500)")
        self.submitted.append((scene_description, archetype.id))
        return f"gen-{len(self.submitted)}"

    async def get_generation_result(self, generation_id: str) -> GenerationResult:
        if self.fail_poll:
            raise LeonardoApiError("Poll error (500)")
        return self.results.get(generation_id, GenerationResult(status=SceneStatus.GENERATING))


def sse_body(*chunks: str, done: bool = True) -> bytes:
    """An OpenRouter-style stream body delivering `chunks` as content deltas."""
    lines = [b": OPENROUTER PROCESSING\n\n"]
    for chunk in chunks:
        payload = {"choices": [{"delta": {"content": chunk}}]}
        lines.append(b"data: " + orjson.dumps(payload) + b"\n\n")
    if done:
        lines.append(b"data: [DONE]\n\n")
    return b"".join(lines)


class BrokenStream(httpx.AsyncByteStream):
    """Delivers `body` then fails like a dropped connection."""

    def __init__(self, body: bytes):
        self.body = body

    async def __aiter__(self):
        yield self.body
        raise httpx.ReadError("connection reset")


class UpstreamStub:
    """httpx.MockTransport handler for the completion API; records request bodies."""

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.respond: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, content=sse_body("Hello", " there!")
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(orjson.loads(request.content))
        return self.respond(request)


def parse_frames(body: bytes) -> list:
    """Decode an SSE body into payloads; `[DONE]` comes back as the string."""
    frames = []
    for block in body.decode().split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[6:]
        frames.append(data if data == "[DONE]" else orjson.loads(data))
    return frames


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def scene_store() -> InMemorySceneStore:
    return InMemorySceneStore()


@pytest.fixture
def conversation_store(scene_store) -> InMemoryConversationStore:
    store = InMemoryConversationStore()
    store.scenes = scene_store
    return store


@pytest.fixture
def leonardo() -> FakeLeonardo:
    return FakeLeonardo()


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def gateway(upstream):
    from app.services.completion import CompletionGateway

    return CompletionGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)))


@pytest.fixture
def ledger(ledger_store):
    from app.services.ledger import LedgerService

    return LedgerService(ledger_store, signup_tokens=10)


@pytest.fixture
def chat_service(conversation_store):
    from app.services.chat import ChatService

    return ChatService(conversation_store)


@pytest.fixture
def director(scene_store, leonardo):
    from app.services.storyboard import SceneDirector

    return SceneDirector(scene_store, leonardo)


@pytest.fixture
def settlement(chat_service, ledger, gateway, director):
    from app.services.settlement import TurnSettlement

    return TurnSettlement(chat_service, ledger, gateway, director)


@pytest.fixture
def chargebee_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def chargebee(chargebee_requests):
    from app.services.chargebee import ChargebeeClient

    def handler(request: httpx.Request) -> httpx.Response:
        chargebee_requests.append(request)
        if request.url.path.endswith("/hosted_pages/checkout_new_for_items"):
            return httpx.Response(200, json={"hosted_page": {"url": "https://acme-test.chargebee.com/pages/v3/abc"}})
        if request.url.path.endswith("/portal_sessions"):
            return httpx.Response(200, json={"portal_session": {"access_url": "https://acme-test.chargebee.com/portal/xyz"}})
        return httpx.Response(404, json={"error_msg": "Not found"})

    return ChargebeeClient(transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture
async def client(ledger_store, conversation_store, scene_store, leonardo, gateway, chargebee) -> AsyncGenerator[AsyncClient, None]:
    """App client signed in as TEST_USER_ID with every store in memory."""
    from app import deps
    from app.main import app

    app.dependency_overrides.update({
        deps.get_identity: lambda: deps.Identity(id=TEST_USER_ID, email=TEST_USER_EMAIL),
        deps.get_ledger_store: lambda: ledger_store,
        deps.get_conversation_store: lambda: conversation_store,
        deps.get_scene_store: lambda: scene_store,
        deps.get_leonardo_client: lambda: leonardo,
        deps.get_completion_gateway: lambda: gateway,
        deps.get_chargebee_client: lambda: chargebee,
    })
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anon_client(ledger_store) -> AsyncGenerator[AsyncClient, None]:
    """App client with no session cookie."""
    from app import deps
    from app.main import app

    app.dependency_overrides[deps.get_ledger_store] = lambda: ledger_store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
