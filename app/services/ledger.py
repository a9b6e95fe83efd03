"""Token ledger: balance rules, audit trail, refunds and purchases."""

from app.core.config import get_settings
from app.core.exceptions import ConflictError, InsufficientTokensError, InvalidPackError
from app.core.logging import get_logger
from app.core.pagination import page_offset, total_pages
from app.repositories.base import LedgerStore
from app.schemas.ledger import TransactionPage, TransactionType
from app.services.packs import get_pack

log = get_logger(__name__)


class LedgerService:
    """Every mutation is a balance change plus one transaction row, run as one unit of work."""

    def __init__(self, store: LedgerStore, signup_tokens: int | None = None):
        self.store = store
        self.signup_tokens = signup_tokens if signup_tokens is not None else get_settings().free_signup_tokens

    async def grant_signup_tokens(self, user_id: str) -> int:
        log.info("billing.signup_tokens_started", user_id=user_id)
        async with self.store.transaction():
            balance = await self.store.initialize_balance(user_id, self.signup_tokens)
            await self.store.record_transaction(
                user_id,
                self.signup_tokens,
                TransactionType.SIGNUP_BONUS,
                balance_after=balance.balance,
                description="Free signup tokens",
            )
        log.info("billing.signup_tokens_completed", user_id=user_id, balance=balance.balance)
        return balance.balance

    async def get_token_balance(self, user_id: str) -> int:
        balance = await self.store.get_balance(user_id)
        if balance is not None:
            return balance
        # No row yet: create an empty one so later credits have something to increment
        try:
            created = await self.store.initialize_balance(user_id, 0)
        except ConflictError:
            # Another request created it between the read and the insert
            log.info("billing.balance_row_race", user_id=user_id)
            return await self.store.get_balance(user_id)
        return created.balance

    async def consume_token(self, user_id: str, conversation_id: str) -> int:
        log.info("billing.consume_started", user_id=user_id, conversation_id=conversation_id)
        async with self.store.transaction():
            new_balance = await self.store.debit_token(user_id)
            if new_balance is None:
                log.warning("billing.consume_insufficient", user_id=user_id, conversation_id=conversation_id)
                raise InsufficientTokensError()
            await self.store.record_transaction(
                user_id,
                -1,
                TransactionType.CONSUMPTION,
                balance_after=new_balance,
                reference_id=conversation_id,
                description="AI conversation turn",
            )
        log.info("billing.consume_completed", user_id=user_id, conversation_id=conversation_id, balance=new_balance)
        return new_balance

    async def refund_token(self, user_id: str, conversation_id: str) -> int:
        """Credit back one token. Not idempotent: each call credits again."""
        log.info("billing.refund_started", user_id=user_id, conversation_id=conversation_id)
        async with self.store.transaction():
            new_balance = await self.store.credit_tokens(user_id, 1)
            await self.store.record_transaction(
                user_id,
                1,
                TransactionType.REFUND,
                balance_after=new_balance,
                reference_id=conversation_id,
                description="Token refunded, AI response failed",
            )
        log.info("billing.refund_completed", user_id=user_id, conversation_id=conversation_id, balance=new_balance)
        return new_balance

    async def credit_purchased_tokens(self, user_id: str, pack_id: str, invoice_id: str) -> int:
        log.info("billing.purchase_credit_started", user_id=user_id, pack_id=pack_id, invoice_id=invoice_id)
        pack = get_pack(pack_id)
        if pack is None:
            raise InvalidPackError(pack_id)

        await self.get_token_balance(user_id)
        async with self.store.transaction():
            new_balance = await self.store.credit_tokens(user_id, pack.tokens)
            await self.store.record_transaction(
                user_id,
                pack.tokens,
                TransactionType.PURCHASE,
                balance_after=new_balance,
                reference_id=invoice_id,
                description=f"Purchased {pack.name}",
            )
        log.info(
            "billing.purchase_credit_completed",
            user_id=user_id,
            pack_id=pack_id,
            tokens=pack.tokens,
            balance=new_balance,
        )
        return new_balance

    async def get_transaction_history(self, user_id: str, page: int, page_size: int) -> TransactionPage:
        log.info("billing.transactions_started", user_id=user_id, page=page, page_size=page_size)
        transactions = await self.store.list_transactions(user_id, page_size, page_offset(page, page_size))
        total = await self.store.count_transactions(user_id)
        log.info("billing.transactions_completed", user_id=user_id, count=len(transactions), total=total)
        return TransactionPage(
            transactions=transactions,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages(total, page_size),
        )
