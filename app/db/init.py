import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.conversation import ConversationDoc
from app.models.failed_job import FailedJob
from app.models.message import MessageDoc
from app.models.processed_webhook_event import ProcessedWebhookEvent
from app.models.scene import SceneDoc
from app.models.token_balance import TokenBalanceDoc
from app.models.token_transaction import TokenTransactionDoc
from app.models.user import User

DOCUMENT_MODELS = [
    User,
    ConversationDoc,
    MessageDoc,
    TokenBalanceDoc,
    TokenTransactionDoc,
    ProcessedWebhookEvent,
    SceneDoc,
    FailedJob,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient:
    if _client is None:
        raise RuntimeError("Database not initialised; call init_db() first")
    return _client


async def init_db() -> None:
    global _client
    if _client is not None:
        return
    settings = get_settings()
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    await init_beanie(database=client[settings.mongodb_db_name], document_models=DOCUMENT_MODELS)
    _client = client
