"""OrderWriter — persists a checkout's order exactly once.

Two paths write the same shape:

- ``write_primary`` runs under the caller's identity and is subject to the
  row-level policy;
- ``write_fallback`` runs under the service role and is only available
  when a service credential is configured.

Both are idempotent on ``temp_order_id``. A header that was written without
its items is resumed rather than duplicated.
"""

import json
import threading
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError

from ordering.domain import ordering
from ordering.order.completion import CompleteCodOrder
from ordering.order.order import Order, WrittenVia
from ordering.order.placement import PlaceOrder, RecordOrderItems
from ordering.writer.policy import RowLevelPolicy, WriteContext
from shared.config import Settings, get_settings
from shared.errors import FallbackUnavailableError, IncompleteOrderError, OrderValidationError

logger = structlog.get_logger(__name__)


@dataclass
class OrderDraft:
    """Everything needed to write one order. Amounts in minor units."""

    temp_order_id: str
    total_amount: int
    payment_method: str
    items: list[dict]
    credit_applied: int = 0
    gateway_amount: int = 0
    currency: str = "INR"
    payment_id: str | None = None
    customer: dict | None = None
    shipping_address: dict | None = None
    billing_address: dict | None = None
    notes: str | None = None

    @property
    def customer_id(self) -> str | None:
        return (self.customer or {}).get("user_id")


class OrderWriter:
    def __init__(self, domain=ordering, policy: RowLevelPolicy | None = None, settings: Settings | None = None) -> None:
        self.domain = domain
        self.settings = settings or get_settings()
        self.policy = policy or RowLevelPolicy(allow_guest_orders=self.settings.allow_guest_orders)
        self._lock = threading.Lock()

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def write_primary(self, draft: OrderDraft, context: WriteContext) -> str:
        self.policy.check_insert(context, draft.customer_id, draft.temp_order_id)
        return self._write(draft, WrittenVia.PRIMARY)

    def write_fallback(self, draft: OrderDraft) -> str:
        if not self.settings.fallback_configured:
            raise FallbackUnavailableError(
                "Order fallback is not configured",
                attempted_amount=draft.total_amount,
                temp_order_id=draft.temp_order_id,
            )
        logger.warning(
            "Writing order through service fallback",
            temp_order_id=draft.temp_order_id,
            customer_id=draft.customer_id,
        )
        return self._write(draft, WrittenVia.FALLBACK)

    def _write(self, draft: OrderDraft, via: WrittenVia) -> str:
        with self._lock, self.domain.domain_context():
            existing = self._find(draft.temp_order_id)
            if existing is not None and existing.items_recorded:
                logger.info(
                    "Order already written",
                    temp_order_id=draft.temp_order_id,
                    order_id=str(existing.id),
                )
                return str(existing.id)

            if existing is not None:
                order_id = str(existing.id)
            else:
                try:
                    order_id = self.domain.process(
                        PlaceOrder(
                            temp_order_id=draft.temp_order_id,
                            total_amount=draft.total_amount,
                            currency=draft.currency,
                            credit_applied=draft.credit_applied,
                            gateway_amount=draft.gateway_amount,
                            payment_method=draft.payment_method,
                            payment_id=draft.payment_id,
                            items=json.dumps(draft.items),
                            customer=json.dumps(draft.customer) if draft.customer else None,
                            shipping_address=json.dumps(draft.shipping_address) if draft.shipping_address else None,
                            billing_address=json.dumps(draft.billing_address) if draft.billing_address else None,
                            notes=draft.notes,
                            written_via=via.value,
                        ),
                        asynchronous=False,
                    )
                except ValidationError as exc:
                    raise OrderValidationError(
                        _summarize(exc),
                        attempted_amount=draft.total_amount,
                        temp_order_id=draft.temp_order_id,
                        details=exc.messages,
                    ) from exc

            self._record_items(order_id, draft)

        logger.info(
            "Order written",
            temp_order_id=draft.temp_order_id,
            order_id=order_id,
            payment_method=draft.payment_method,
            total_amount=draft.total_amount,
            written_via=via.value,
        )
        return order_id

    def _record_items(self, order_id: str, draft: OrderDraft) -> None:
        try:
            self.domain.process(
                RecordOrderItems(order_id=order_id, items=json.dumps(draft.items)),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error(
                "Order items were not recorded",
                temp_order_id=draft.temp_order_id,
                order_id=order_id,
                error=str(exc),
            )
            raise IncompleteOrderError(
                "The order was saved without its items",
                order_id=order_id,
                attempted_amount=draft.total_amount,
                temp_order_id=draft.temp_order_id,
            ) from exc

    def complete_cod(self, order_id: str, payment_id: str | None = None) -> Order:
        with self.domain.domain_context():
            self.domain.process(CompleteCodOrder(order_id=order_id, payment_id=payment_id), asynchronous=False)
            order = self.domain.repository_for(Order).get(order_id)
        logger.info("COD order completed", order_id=order_id, amount_collected=order.cod_collectable)
        return order

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def get(self, order_id: str) -> Order:
        with self.domain.domain_context():
            return self.domain.repository_for(Order).get(order_id)

    def find_by_temp_order_id(self, temp_order_id: str) -> Order | None:
        with self.domain.domain_context():
            return self._find(temp_order_id)

    def find_incomplete(self) -> list[Order]:
        """Orders whose header exists but whose items were never recorded."""
        with self.domain.domain_context():
            repo = self.domain.repository_for(Order)
            return list(repo._dao.query.filter(items_recorded=False).all().items)

    def _find(self, temp_order_id: str) -> Order | None:
        repo = self.domain.repository_for(Order)
        orders = repo._dao.query.filter(temp_order_id=temp_order_id).all().items
        return orders[0] if orders else None


def _summarize(exc: ValidationError) -> str:
    parts = []
    for field, messages in exc.messages.items():
        for message in messages:
            parts.append(f"{field}: {message}")
    return "; ".join(parts) or "Order failed validation"
