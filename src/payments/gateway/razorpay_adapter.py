"""Razorpay hosted checkout adapter.

Orders are registered with ``POST /v1/orders`` (basic auth, amount in
paise). The payer then pays in Razorpay's own widget, and the outcome comes
back through the callback endpoint into ``PaymentCallbacks``.
"""

import asyncio

import httpx
import structlog

from payments.gateway.callbacks import PaymentCallbacks
from payments.gateway.port import (
    GatewayDeclinedError,
    GatewayNetworkError,
    GatewayOrder,
    GatewayOutcome,
    HostedGateway,
)

logger = structlog.get_logger(__name__)


class RazorpayGateway(HostedGateway):
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        callbacks: PaymentCallbacks,
        base_url: str = "https://api.razorpay.com",
        timeout: float = 15.0,
        outcome_timeout: float | None = 900.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not key_id or not key_secret:
            raise ValueError("Razorpay credentials are not configured")
        self.callbacks = callbacks
        self.outcome_timeout = outcome_timeout
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            auth=(key_id, key_secret),
        )

    async def create_order(self, amount: int, currency: str, correlation_id: str) -> GatewayOrder:
        try:
            response = await self._client.post(
                "/v1/orders",
                json={
                    "amount": amount,
                    "currency": currency,
                    "receipt": correlation_id,
                    "notes": {},
                    "payment_capture": 1,
                },
            )
        except httpx.HTTPError as exc:
            raise GatewayNetworkError(f"Razorpay unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise GatewayNetworkError(f"Razorpay returned {response.status_code}")
        if response.status_code >= 400:
            description = response.json().get("error", {}).get("description") or "Failed to create order"
            logger.warning(
                "Razorpay rejected order",
                correlation_id=correlation_id,
                status_code=response.status_code,
                description=description,
            )
            raise GatewayDeclinedError(description)

        body = response.json()
        return GatewayOrder(
            gateway_order_id=body["id"],
            amount=body["amount"],
            currency=body["currency"],
            correlation_id=body.get("receipt") or correlation_id,
            status=body.get("status", "created"),
        )

    async def await_outcome(self, gateway_order_id: str) -> GatewayOutcome:
        try:
            return await self.callbacks.wait(gateway_order_id, timeout=self.outcome_timeout)
        except asyncio.TimeoutError as exc:
            raise GatewayNetworkError(f"No outcome received for {gateway_order_id}") from exc

    async def is_captured(self, gateway_order_id: str) -> bool:
        """Ask Razorpay for the order. ``paid`` means a payment was captured."""
        try:
            response = await self._client.get(f"/v1/orders/{gateway_order_id}")
        except httpx.HTTPError as exc:
            raise GatewayNetworkError(f"Razorpay unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise GatewayNetworkError(f"Razorpay returned {response.status_code}")
        if response.status_code >= 400:
            raise GatewayDeclinedError(f"Razorpay could not find order {gateway_order_id}")
        return response.json().get("status") == "paid"

    async def aclose(self) -> None:
        await self._client.aclose()
