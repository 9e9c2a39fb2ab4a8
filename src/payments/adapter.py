"""GatewayAdapter — the checkout's only way to talk to the hosted gateway.

Keeps a GatewayPayment record per correlation id (the temp order id), so
registering the same checkout twice returns the same gateway order instead
of creating a second one. Transient network failures are retried with
bounded backoff; declines are not.
"""

import structlog
from protean.exceptions import ObjectNotFoundError

from payments.domain import payments
from payments.gateway import get_gateway, get_verifier
from payments.gateway.port import (
    GatewayDeclinedError,
    GatewayNetworkError,
    GatewayOutcome,
    HostedGateway,
    SignatureVerifier,
)
from payments.gateway.retry import RetryPolicy
from payments.record.record import GatewayPayment, GatewayPaymentStatus
from payments.record.registration import RegisterGatewayPayment
from payments.record.verification import ConfirmGatewayPayment, FailGatewayPayment
from shared.config import get_settings
from shared.errors import GatewayUnavailableError, PaymentFailedError

logger = structlog.get_logger(__name__)


class GatewayAdapter:
    def __init__(
        self,
        gateway: HostedGateway | None = None,
        verifier: SignatureVerifier | None = None,
        retry: RetryPolicy | None = None,
        domain=payments,
    ) -> None:
        self._gateway = gateway
        self._verifier = verifier
        self.domain = domain
        if retry is None:
            settings = get_settings()
            retry = RetryPolicy(
                max_attempts=settings.gateway_retry_attempts,
                base_delay=settings.gateway_retry_base_delay,
                max_delay=settings.gateway_retry_max_delay,
            )
        self.retry = retry

    @property
    def gateway(self) -> HostedGateway:
        return self._gateway or get_gateway()

    @property
    def verifier(self) -> SignatureVerifier:
        return self._verifier or get_verifier()

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    async def register_order(self, amount: int, currency: str, correlation_id: str) -> str:
        """Register ``amount`` minor units with the gateway. Returns its order id."""
        existing = self.find_by_correlation(correlation_id)
        if existing is not None:
            logger.info(
                "Gateway order already registered",
                correlation_id=correlation_id,
                gateway_order_id=str(existing.gateway_order_id),
            )
            return str(existing.gateway_order_id)

        try:
            order = await self.retry.run(self.gateway.create_order, amount, currency, correlation_id)
        except GatewayNetworkError as exc:
            raise GatewayUnavailableError(
                "The payment gateway is unreachable, please try again",
                attempted_amount=amount,
                temp_order_id=correlation_id,
            ) from exc
        except GatewayDeclinedError as exc:
            raise PaymentFailedError(str(exc), attempted_amount=amount, temp_order_id=correlation_id) from exc

        with self.domain.domain_context():
            self.domain.process(
                RegisterGatewayPayment(
                    gateway_order_id=order.gateway_order_id,
                    correlation_id=correlation_id,
                    amount=amount,
                    currency=currency,
                ),
                asynchronous=False,
            )
        logger.info(
            "Gateway order registered",
            correlation_id=correlation_id,
            gateway_order_id=order.gateway_order_id,
            amount=amount,
            currency=currency,
        )
        return order.gateway_order_id

    async def await_outcome(self, gateway_order_id: str) -> GatewayOutcome:
        try:
            return await self.gateway.await_outcome(gateway_order_id)
        except GatewayNetworkError as exc:
            record = self.get_record(gateway_order_id)
            raise GatewayUnavailableError(
                "No payment outcome was received from the gateway",
                attempted_amount=record.amount if record else None,
                temp_order_id=record.correlation_id if record else None,
            ) from exc

    async def is_captured(self, gateway_order_id: str) -> bool:
        """Ask the gateway itself whether money was captured for this order.

        Used before acting on a failed or cancelled outcome, which the payer's
        side can report without the gateway agreeing.
        """
        try:
            captured = await self.retry.run(self.gateway.is_captured, gateway_order_id)
        except (GatewayNetworkError, GatewayDeclinedError) as exc:
            record = self.get_record(gateway_order_id)
            raise GatewayUnavailableError(
                "The payment status could not be confirmed with the gateway",
                attempted_amount=record.amount if record else None,
                temp_order_id=record.correlation_id if record else None,
            ) from exc
        if captured:
            logger.warning("Gateway reports a captured payment", gateway_order_id=gateway_order_id)
        return captured

    async def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Check the payment signature and record the result.

        Marks the record paid on success and failed on mismatch. Unknown
        gateway orders never verify.
        """
        record = self.get_record(gateway_order_id)
        if record is None:
            logger.warning("Verification for unknown gateway order", gateway_order_id=gateway_order_id)
            return False
        if record.status == GatewayPaymentStatus.FAILED.value:
            return False

        try:
            verified = await self.verifier.verify(gateway_order_id, gateway_payment_id, signature)
        except GatewayNetworkError as exc:
            raise GatewayUnavailableError(
                "Payment verification is temporarily unavailable",
                attempted_amount=record.amount,
                temp_order_id=record.correlation_id,
            ) from exc

        if record.is_paid:
            return verified and record.gateway_payment_id == gateway_payment_id

        with self.domain.domain_context():
            if verified:
                self.domain.process(
                    ConfirmGatewayPayment(
                        gateway_order_id=gateway_order_id,
                        gateway_payment_id=gateway_payment_id,
                    ),
                    asynchronous=False,
                )
            else:
                self.domain.process(
                    FailGatewayPayment(
                        gateway_order_id=gateway_order_id,
                        reason="Payment signature did not verify",
                        gateway_payment_id=gateway_payment_id,
                    ),
                    asynchronous=False,
                )

        log = logger.info if verified else logger.error
        log(
            "Payment signature checked",
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
            correlation_id=record.correlation_id,
            verified=verified,
        )
        return verified

    def mark_failed(self, gateway_order_id: str, reason: str) -> None:
        record = self.get_record(gateway_order_id)
        if record is None or record.status != GatewayPaymentStatus.CREATED.value:
            return
        with self.domain.domain_context():
            self.domain.process(
                FailGatewayPayment(gateway_order_id=gateway_order_id, reason=reason),
                asynchronous=False,
            )
        logger.info("Gateway payment marked failed", gateway_order_id=gateway_order_id, reason=reason)

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def get_record(self, gateway_order_id: str) -> GatewayPayment | None:
        with self.domain.domain_context():
            try:
                return self.domain.repository_for(GatewayPayment).get(gateway_order_id)
            except ObjectNotFoundError:
                return None

    def find_by_correlation(self, correlation_id: str) -> GatewayPayment | None:
        with self.domain.domain_context():
            repo = self.domain.repository_for(GatewayPayment)
            records = repo._dao.query.filter(correlation_id=correlation_id).all().items
            return records[0] if records else None
