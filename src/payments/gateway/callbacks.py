"""Out-of-band gateway outcomes.

The hosted gateway reports back through ``POST /payments/callback``. Anyone
awaiting that order is woken. Every outcome is also kept until a waiter
collects it, so one that arrives early, or after a waiter gave up, is not
lost. Outcomes nobody collects within ``retention`` seconds are dropped.
"""

import asyncio
import time

from payments.gateway.port import GatewayOutcome


class PaymentCallbacks:
    def __init__(self, retention: float = 3600.0, clock=time.monotonic) -> None:
        self.retention = retention
        self._clock = clock
        self._waiters: dict[str, asyncio.Future] = {}
        self._arrived: dict[str, tuple[GatewayOutcome, float]] = {}

    def resolve(self, outcome: GatewayOutcome) -> None:
        self.prune()
        self._arrived[outcome.gateway_order_id] = (outcome, self._clock())
        waiter = self._waiters.pop(outcome.gateway_order_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(outcome)

    async def wait(self, gateway_order_id: str, timeout: float | None = None) -> GatewayOutcome:
        """Raises ``asyncio.TimeoutError`` when nothing arrives in time."""
        self.prune()
        if gateway_order_id in self._arrived:
            return self._arrived.pop(gateway_order_id)[0]

        waiter = self._waiters.get(gateway_order_id)
        if waiter is None or waiter.done():
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[gateway_order_id] = waiter
        try:
            outcome = await asyncio.wait_for(asyncio.shield(waiter), timeout)
        except asyncio.TimeoutError:
            # A later outcome is kept in _arrived instead
            if self._waiters.get(gateway_order_id) is waiter:
                del self._waiters[gateway_order_id]
            raise
        self._arrived.pop(gateway_order_id, None)
        return outcome

    def prune(self) -> int:
        """Drop uncollected outcomes older than ``retention``. Returns how many."""
        cutoff = self._clock() - self.retention
        stale = [order_id for order_id, (_, arrived_at) in self._arrived.items() if arrived_at < cutoff]
        for order_id in stale:
            del self._arrived[order_id]
        return len(stale)

    def pending(self) -> list[str]:
        return list(self._waiters)

    def uncollected(self) -> list[str]:
        return list(self._arrived)
