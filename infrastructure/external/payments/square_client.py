"""
Square adapter for the single lookup webhook reconciliation needs:
``GET /v2/orders/{order_id}`` to map a Square order back to our order number
(Square's ``reference_id``).

Calls the REST API directly with httpx; requests carry the Bearer access token
and a pinned ``Square-Version`` header.
"""
from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from application.dtos.payments import GatewayOrder
from infrastructure.external.payments.base import BaseGatewayClient
from infrastructure.external.payments.exceptions import GatewayLookupError
from core.settings import SquareSettings, gateway_settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class SquareClient(BaseGatewayClient):
    provider = "square"

    def __init__(self, config: Optional[SquareSettings] = None, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        cfg = config or gateway_settings.square
        super().__init__(
            base_url=cfg.base_url,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )
        self._access_token = cfg.access_token
        self._api_version = cfg.api_version

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Square-Version"] = self._api_version
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def lookup_order(self, provider_order_id: str) -> GatewayOrder:  # type: ignore[override]
        if not self._access_token:
            raise GatewayLookupError("SQUARE__ACCESS_TOKEN not configured", provider=self.provider)

        async def _get() -> httpx.Response:
            async with self.client() as c:
                return await c.get(f"/v2/orders/{provider_order_id}")

        try:
            resp = await self._retry(_get)
        except httpx.HTTPError as exc:
            logger.error("square_order_lookup_transport_error", order_id=provider_order_id, error=str(exc))
            raise GatewayLookupError(
                f"Square order lookup failed: {exc}", provider=self.provider, details={"order_id": provider_order_id}
            ) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code >= 400:
            errors = body.get("errors") or [{}]
            first = errors[0] if isinstance(errors, list) and errors else {}
            raise GatewayLookupError(
                first.get("detail") or f"Square returned HTTP {resp.status_code}",
                provider=self.provider,
                status_code=resp.status_code,
                provider_code=first.get("code"),
                details={"order_id": provider_order_id},
            )

        try:
            order = GatewayOrder.model_validate(body.get("order") or {})
        except ValidationError as exc:
            raise GatewayLookupError(
                "Square order response has no order",
                provider=self.provider,
                status_code=resp.status_code,
                details={"order_id": provider_order_id},
            ) from exc
        self._log("square_order_lookup", order_id=order.id, reference_id=order.reference_id)
        return order
