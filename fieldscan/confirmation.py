"""Operator confirmation step for two-step fulfillment."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from .state import ConfirmationDecision, OrderRef
from .status import StatusLifecycle

logger = logging.getLogger(__name__)


class ConfirmationBusy(RuntimeError):
    """Raised when a second confirmation is requested while one is open."""


class ConfirmationGate:
    """
    Present an order to the operator and wait for an explicit decision.

    The request is published to UI subscribers as a ``confirmation`` event.
    It completes only through `resolve()` with ``confirm`` or ``cancel``; there
    is no timeout and no silent dismissal.
    """

    def __init__(self, status: StatusLifecycle) -> None:
        self._status = status
        self._order: Optional[OrderRef] = None
        self._future: Optional[asyncio.Future[ConfirmationDecision]] = None

    @property
    def pending(self) -> Optional[OrderRef]:
        if self._future is None or self._future.done():
            return None
        return self._order

    async def confirm(self, order: OrderRef) -> ConfirmationDecision:
        if self.pending is not None:
            raise ConfirmationBusy(f"confirmation already open for order {self._order.id if self._order else '?'}")

        future: asyncio.Future[ConfirmationDecision] = asyncio.get_running_loop().create_future()
        self._order = order
        self._future = future
        logger.info("🙋 Awaiting operator confirmation for order %s (size=%s)", order.id, order.size)
        self._status.publish("confirmation", order.to_payload())
        try:
            decision = await future
        finally:
            # A newer confirmation may already be open after a reset
            if self._future is future:
                self._order = None
                self._future = None
        logger.info("🙋 Operator decision for order %s: %s", order.id, decision.value)
        return decision

    def resolve(self, decision: Union[ConfirmationDecision, str]) -> bool:
        """Complete the open confirmation. Returns False when nothing is pending."""
        decision = ConfirmationDecision(decision)
        if self._future is None or self._future.done():
            logger.warning("Confirmation decision %s ignored - nothing pending", decision.value)
            return False
        self._future.set_result(decision)
        self._status.publish("confirmation_closed", {"decision": decision.value})
        return True


__all__ = ["ConfirmationGate", "ConfirmationBusy"]
