from datetime import datetime
from enum import Enum

from app.schemas import ApiModel


class TransactionType(str, Enum):
    SIGNUP_BONUS = "signup_bonus"
    CONSUMPTION = "consumption"
    REFUND = "refund"
    PURCHASE = "purchase"


class TokenBalance(ApiModel):
    user_id: str
    balance: int
    created_at: datetime
    updated_at: datetime


class TokenTransaction(ApiModel):
    id: str
    user_id: str
    amount: int
    type: TransactionType
    reference_id: str | None = None
    description: str | None = None
    balance_after: int
    created_at: datetime


class TransactionPage(ApiModel):
    transactions: list[TokenTransaction]
    total: int
    page: int
    page_size: int
    total_pages: int


class TokenPack(ApiModel):
    id: str
    name: str
    tokens: int
    price_in_cents: int
    description: str
    chargebee_item_price_id: str
