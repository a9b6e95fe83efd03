from fastapi import APIRouter, Depends, Query

from app.core.config import get_settings
from app.core.exceptions import InvalidPackError
from app.core.pagination import paginate
from app.deps import Identity, get_chargebee_client, get_identity, get_ledger_service
from app.schemas import ApiModel
from app.services.chargebee import ChargebeeClient
from app.services.ledger import LedgerService
from app.services.packs import TOKEN_PACKS, get_pack

router = APIRouter()


class CheckoutRequest(ApiModel):
    pack_id: str


@router.get("/balance")
async def billing_balance(
    user: Identity = Depends(get_identity),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Return current token balance."""
    balance = await ledger.get_token_balance(user.id)
    return {"balance": balance, "lowBalance": balance <= get_settings().low_balance_threshold}


@router.get("/transactions")
async def billing_transactions(
    user: Identity = Depends(get_identity),
    ledger: LedgerService = Depends(get_ledger_service),
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
):
    """Return the user's ledger, newest first."""
    page, page_size = paginate(page, page_size)
    history = await ledger.get_transaction_history(user.id, page, page_size)
    return history.to_json()


@router.get("/packs")
async def billing_packs():
    return {"packs": [p.to_json() for p in TOKEN_PACKS]}


@router.post("/checkout")
async def billing_checkout(
    body: CheckoutRequest,
    user: Identity = Depends(get_identity),
    chargebee: ChargebeeClient = Depends(get_chargebee_client),
):
    """Create a hosted checkout page for a token pack."""
    pack = get_pack(body.pack_id)
    if pack is None:
        raise InvalidPackError(body.pack_id)
    url = await chargebee.create_checkout(user.id, user.email, pack)
    return {"url": url}


@router.post("/portal")
async def billing_portal(
    user: Identity = Depends(get_identity),
    chargebee: ChargebeeClient = Depends(get_chargebee_client),
):
    url = await chargebee.create_portal_session(user.id)
    return {"url": url}
