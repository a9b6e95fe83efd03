"""Chargebee hosted checkout and self-service portal."""

import httpx
import orjson

from app.core.config import Settings, get_settings
from app.core.exceptions import ChargebeeError
from app.core.logging import get_logger
from app.schemas.ledger import TokenPack
from app.services.packs import CHARGEBEE_FREE_PLAN_PRICE_ID

log = get_logger(__name__)

_REQUEST_TIMEOUT = 15.0


class ChargebeeClient:
    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.settings.chargebee_site or not self.settings.chargebee_api_key:
            raise ChargebeeError("Billing is not configured")
        return httpx.AsyncClient(
            base_url=f"https://{self.settings.chargebee_site}.chargebee.com/api/v2",
            auth=(self.settings.chargebee_api_key, ""),
            timeout=_REQUEST_TIMEOUT,
            transport=self._transport,
        )

    async def _post_form(self, path: str, form: dict[str, str]) -> dict:
        try:
            async with self._client() as client:
                resp = await client.post(path, data=form)
        except httpx.HTTPError as e:
            log.error("chargebee.fetch_failed", path=path, error=str(e))
            raise ChargebeeError(f"Failed to reach billing provider: {e}") from e
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.is_error:
            message = data.get("error_msg") or "Chargebee error"
            log.error("chargebee.api_error", path=path, status=resp.status_code, error=message, code=data.get("error_code"))
            raise ChargebeeError(message)
        return data

    async def create_checkout(self, user_id: str, email: str | None, pack: TokenPack) -> str:
        """Hosted checkout: the free anchor plan plus a one-off charge for the pack. Returns the page URL."""
        frontend = self.settings.frontend_url.rstrip("/")
        form = {
            "subscription_items[item_price_id][0]": CHARGEBEE_FREE_PLAN_PRICE_ID,
            "subscription_items[quantity][0]": "1",
            "subscription_items[item_price_id][1]": pack.chargebee_item_price_id,
            "subscription_items[quantity][1]": "1",
            "subscription_items[charge_once][1]": "true",
            "customer[id]": user_id,
            "redirect_url": f"{frontend}/billing/success",
            "cancel_url": f"{frontend}/billing/cancel",
            "pass_thru_content": orjson.dumps({"packId": pack.id, "userId": user_id}).decode(),
        }
        if email:
            form["customer[email]"] = email
        data = await self._post_form("/hosted_pages/checkout_new_for_items", form)
        url = (data.get("hosted_page") or {}).get("url")
        if not url:
            raise ChargebeeError("No checkout URL returned")
        return url

    async def create_portal_session(self, user_id: str) -> str:
        frontend = self.settings.frontend_url.rstrip("/")
        data = await self._post_form(
            "/portal_sessions",
            {"customer[id]": user_id, "redirect_url": f"{frontend}/billing"},
        )
        url = (data.get("portal_session") or {}).get("access_url")
        if not url:
            raise ChargebeeError("No portal URL returned")
        return url
