from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class TokenBalanceDoc(Document):
    """Current balance per user; only mutated through atomic $inc updates."""
    user_id: Indexed(str, unique=True)
    balance: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "token_balances"
