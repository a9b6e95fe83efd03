"""Token pack catalog, keyed by pack id and by billing-provider item price id."""

from app.schemas.ledger import TokenPack

# Free subscription anchor every checkout is attached to
CHARGEBEE_FREE_PLAN_PRICE_ID = "token-access-free-USD"

TOKEN_PACKS: tuple[TokenPack, ...] = (
    TokenPack(
        id="pack-50",
        name="50 Tokens",
        tokens=50,
        price_in_cents=500,
        description="50 AI conversation turns",
        chargebee_item_price_id="token-pack-50-USD",
    ),
    TokenPack(
        id="pack-150",
        name="150 Tokens",
        tokens=150,
        price_in_cents=1000,
        description="150 AI conversation turns",
        chargebee_item_price_id="token-pack-150-USD",
    ),
    TokenPack(
        id="pack-500",
        name="500 Tokens",
        tokens=500,
        price_in_cents=2500,
        description="500 AI conversation turns",
        chargebee_item_price_id="token-pack-500-USD",
    ),
)


def get_pack(pack_id: str) -> TokenPack | None:
    return next((p for p in TOKEN_PACKS if p.id == pack_id), None)


def get_pack_by_item_price(item_price_id: str | None) -> TokenPack | None:
    if not item_price_id:
        return None
    return next((p for p in TOKEN_PACKS if p.chargebee_item_price_id == item_price_id), None)
