"""Admission gate that turns a noisy camera feed into distinct scans."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Optional

from .state import GateDecision, ScanEvent
from .status import StatusLifecycle

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ScanEventGate:
    """
    Decide whether a raw scan event may start a transaction.

    Rules, in order:
    - drop while a transaction is active or its result is still shown
    - drop inside the cooldown window that follows each admission
    - drop the text admitted last, until `reset()` is called
    - otherwise admit and start a new cooldown window
    """

    def __init__(self, status: StatusLifecycle, *, cooldown_ms: int = 100, clock: Clock = time.monotonic) -> None:
        self._status = status
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._last_admitted: Optional[str] = None
        self._cooldown_until: float = 0.0

    @property
    def last_admitted(self) -> Optional[str]:
        return self._last_admitted

    @property
    def cooling_down(self) -> bool:
        return self._clock() < self._cooldown_until

    def accept(self, event: ScanEvent) -> GateDecision:
        text = event.text
        if not text or not text.strip():
            return GateDecision.drop()
        if not self._status.is_idle:
            logger.debug("Scan dropped (status=%s)", self._status.status.value)
            return GateDecision.drop()
        if self.cooling_down:
            logger.debug("Scan dropped (cooldown)")
            return GateDecision.drop()
        if text == self._last_admitted:
            return GateDecision.drop()

        self._last_admitted = text
        self._cooldown_until = self._clock() + self.cooldown_ms / 1000.0
        logger.info("📷 Scan admitted: %s", text)
        return GateDecision.admit(text)

    def reset(self) -> None:
        """Forget the last admitted text and force the status back to idle."""
        self._last_admitted = None
        self._cooldown_until = 0.0
        self._status.reset()


__all__ = ["ScanEventGate"]
