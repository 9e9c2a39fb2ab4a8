"""Hosted gateway factory.

Provides build_gateway() / get_gateway() / set_gateway() to swap
implementations:
- FakeGateway for development and testing (refused in production)
- RazorpayGateway for production

The matching signature verifier is built alongside the gateway. It uses the
gateway's key secret locally, or the trusted verification endpoint when
``verify_endpoint_url`` is configured.
"""

from payments.gateway.callbacks import PaymentCallbacks
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import HostedGateway, SignatureVerifier
from payments.gateway.razorpay_adapter import RazorpayGateway
from payments.gateway.signature import HmacSignatureVerifier, RemoteSignatureVerifier
from shared.config import Settings, get_settings

_callbacks = PaymentCallbacks()
_current_gateway: HostedGateway | None = None
_current_verifier: SignatureVerifier | None = None


def build_gateway(settings: Settings) -> tuple[HostedGateway, SignatureVerifier]:
    if settings.gateway == "fake":
        if settings.is_production:
            raise RuntimeError("The fake gateway cannot be used in production")
        gateway = FakeGateway(secret=settings.fake_gateway_secret)
        secret = settings.fake_gateway_secret
    elif settings.gateway == "razorpay":
        gateway = RazorpayGateway(
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            callbacks=_callbacks,
            base_url=settings.gateway_base_url,
            timeout=settings.gateway_timeout_seconds,
            outcome_timeout=settings.gateway_outcome_timeout_seconds,
        )
        secret = settings.gateway_key_secret
    else:
        raise RuntimeError(f"Unknown gateway '{settings.gateway}'")

    if settings.verify_endpoint_url:
        verifier: SignatureVerifier = RemoteSignatureVerifier(settings)
    else:
        verifier = HmacSignatureVerifier(secret)
    return gateway, verifier


def get_gateway() -> HostedGateway:
    """Return the current gateway, building it from settings on first use."""
    global _current_gateway, _current_verifier
    if _current_gateway is None:
        _current_gateway, _current_verifier = build_gateway(get_settings())
    return _current_gateway


def get_verifier() -> SignatureVerifier:
    get_gateway()
    return _current_verifier


def get_callbacks() -> PaymentCallbacks:
    return _callbacks


def set_gateway(gateway: HostedGateway, verifier: SignatureVerifier | None = None) -> None:
    """Override the active gateway (useful for tests).

    A ``FakeGateway`` without an explicit verifier gets one keyed on its own
    secret.
    """
    global _current_gateway, _current_verifier
    if verifier is None and isinstance(gateway, FakeGateway):
        verifier = HmacSignatureVerifier(gateway.secret)
    _current_gateway = gateway
    _current_verifier = verifier


def reset_gateway() -> None:
    """Reset to the settings-driven gateway."""
    global _current_gateway, _current_verifier
    _current_gateway = None
    _current_verifier = None
