from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse

from app.core.exceptions import error_body
from app.core.logging import get_logger
from app.deps import get_ledger_service, require_webhook_auth
from app.services.ledger import LedgerService
from app.services.webhooks import handle_billing_event

router = APIRouter()
log = get_logger(__name__)


@router.post("/billing", dependencies=[Depends(require_webhook_auth)])
async def billing_webhook(request: Request, ledger: LedgerService = Depends(get_ledger_service)):
    """Billing provider events. Anything but an unexpected failure answers 200."""
    try:
        event = await request.json()
    except ValueError:
        log.warning("webhook.invalid_body")
        return {"status": "ok"}
    if not isinstance(event, dict):
        log.warning("webhook.invalid_body")
        return {"status": "ok"}

    try:
        outcome = await handle_billing_event(event, ledger)
    except Exception as e:
        log.exception("webhook.processing_failed", event_id=event.get("id"), error=str(e))
        return ORJSONResponse(status_code=500, content=error_body("Webhook processing failed", "INTERNAL_ERROR"))
    log.info("webhook.processed", event_id=event.get("id"), outcome=outcome)
    return {"status": "ok"}
