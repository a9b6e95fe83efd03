from datetime import datetime

from beanie import Document
from pydantic import Field


class TokenTransactionDoc(Document):
    user_id: str
    amount: int  # positive = credit, negative = debit
    type: str  # signup_bonus, consumption, refund, purchase
    reference_id: str | None = None  # conversation id or invoice id
    description: str | None = None
    balance_after: int
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "token_transactions"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("reference_id", 1)],
        ]
