"""Billing webhook events: credit purchased packs exactly once per event id."""

from typing import Any

from app.core.logging import get_logger
from app.services.ledger import LedgerService
from app.services.packs import get_pack_by_item_price

log = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_succeeded"


async def handle_billing_event(event: dict[str, Any], ledger: LedgerService) -> str:
    """Apply one event; returns what happened ("duplicate", "credited", "ignored", ...).

    The event id is claimed in the same unit of work as the credit, so the
    marker never outlives a credit that did not happen. Without a
    transactional store the claim is released explicitly when crediting fails.
    """
    event_id = str(event.get("id") or "")
    event_type = str(event.get("event_type") or "")
    log.info("webhook.received", event_id=event_id, event_type=event_type)

    if not event_id:
        log.warning("webhook.missing_event_id", event_type=event_type)
        return "ignored"

    content = event.get("content") or {}
    invoice = content.get("invoice") or {}
    user_id = invoice.get("customer_id") or (content.get("customer") or {}).get("id")
    invoice_id = invoice.get("id") or event_id
    line_items = invoice.get("line_items") or []
    pack = next(
        (p for p in (get_pack_by_item_price(item.get("entity_id")) for item in line_items) if p is not None),
        None,
    )

    claimed = False
    try:
        async with ledger.store.transaction():
            if not await ledger.store.claim_event(event_id, event_type):
                log.info("webhook.duplicate_skipped", event_id=event_id)
                return "duplicate"
            claimed = True
            if event_type != PAYMENT_SUCCEEDED:
                return "ignored"
            if user_id and pack:
                await ledger.credit_purchased_tokens(user_id, pack.id, invoice_id)
    except Exception:
        if claimed:
            await ledger.store.release_event(event_id)
        raise

    if user_id and pack:
        log.info("webhook.tokens_credited", user_id=user_id, pack_id=pack.id, invoice_id=invoice_id, tokens=pack.tokens)
        return "credited"
    if user_id and not line_items:
        log.info("webhook.free_subscription_payment", user_id=user_id, event_id=event_id)
        return "free_subscription"
    log.warning("webhook.no_matching_pack", event_id=event_id, user_id=user_id, line_item_count=len(line_items))
    return "no_matching_pack"
