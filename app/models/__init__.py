from app.models.user import User
from app.models.conversation import ConversationDoc
from app.models.message import MessageDoc
from app.models.token_balance import TokenBalanceDoc
from app.models.token_transaction import TokenTransactionDoc
from app.models.processed_webhook_event import ProcessedWebhookEvent
from app.models.scene import SceneDoc
from app.models.failed_job import FailedJob

__all__ = [
    "User",
    "ConversationDoc",
    "MessageDoc",
    "TokenBalanceDoc",
    "TokenTransactionDoc",
    "ProcessedWebhookEvent",
    "SceneDoc",
    "FailedJob",
]
