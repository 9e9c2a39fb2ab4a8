"""Payment signature verification.

A gateway signs a successful payment as
``hex(HMAC_SHA256(key_secret, f"{order_id}|{payment_id}"))``. The secret
lives only on the server: ``HmacSignatureVerifier`` runs where the secret
is, ``RemoteSignatureVerifier`` asks the trusted ``POST /payments/verify``
endpoint to do it.
"""

import hashlib
import hmac

import httpx
import structlog

from payments.gateway.port import GatewayNetworkError, SignatureVerifier
from shared.config import Settings
from shared.security import mint_internal_token

logger = structlog.get_logger(__name__)

VERIFY_AUDIENCE = "payments.verify"


def sign(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class HmacSignatureVerifier(SignatureVerifier):
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret

    async def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not (gateway_order_id and gateway_payment_id and signature):
            return False
        expected = sign(self._secret, gateway_order_id, gateway_payment_id)
        return hmac.compare_digest(expected, signature)


class RemoteSignatureVerifier(SignatureVerifier):
    """Delegates to the trusted verification endpoint with an internal token."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        if not settings.verify_endpoint_url:
            raise ValueError("verify_endpoint_url is not configured")
        self.settings = settings
        self._client = client

    async def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        token = mint_internal_token(VERIFY_AUDIENCE, self.settings)
        payload = {
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": gateway_payment_id,
            "signature": signature,
        }
        client = self._client or httpx.AsyncClient(timeout=self.settings.gateway_timeout_seconds)
        try:
            response = await client.post(
                self.settings.verify_endpoint_url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise GatewayNetworkError(f"Verification endpoint unreachable: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code >= 500:
            raise GatewayNetworkError(f"Verification endpoint returned {response.status_code}")
        if response.status_code != 200:
            logger.warning(
                "Verification endpoint rejected request",
                status_code=response.status_code,
                gateway_order_id=gateway_order_id,
            )
            return False
        return bool(response.json().get("verified"))
