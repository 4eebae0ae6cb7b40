"""Operator-visible status with timed auto-revert and UI fan-out."""
from __future__ import annotations

import asyncio
import logging
from asyncio import QueueEmpty
from typing import Any, Dict, List, Optional

from .state import ControllerEvent, ScanStatus

logger = logging.getLogger(__name__)


class StatusLifecycle:
    """
    Single process-wide status value: idle → loading → success/error → idle.

    Every transition that starts or abandons a transaction bumps a generation
    counter. Terminal results and auto-revert timers carry the generation they
    belong to and are ignored once it is no longer current, so a late timer or
    a result arriving after `reset()` never overwrites newer state.
    """

    def __init__(self, *, revert_delay: float = 0.5, queue_size: int = 8) -> None:
        self.revert_delay = revert_delay
        self._queue_size = queue_size
        self._status: ScanStatus = ScanStatus.IDLE
        self._generation: int = 0
        self._last_error: Optional[str] = None
        self._revert_task: Optional[asyncio.Task[None]] = None
        self._subscribers: List[asyncio.Queue[ControllerEvent]] = []

    @property
    def status(self) -> ScanStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_idle(self) -> bool:
        return self._status is ScanStatus.IDLE

    def is_current(self, token: int) -> bool:
        return token == self._generation

    # ------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------

    def register_ui(self) -> asyncio.Queue[ControllerEvent]:
        queue: asyncio.Queue[ControllerEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[ControllerEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def snapshot(self) -> ControllerEvent:
        return ControllerEvent(type="status", data={}, status=self._status, error=self._last_error)

    def publish(self, type: str, data: Optional[Dict[str, Any]] = None, *, error: Optional[str] = None) -> None:
        """Broadcast event to all UI subscribers, dropping the oldest when a queue is full."""
        event = ControllerEvent(type=type, data=data or {}, status=self._status, error=error)
        for queue in list(self._subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to broadcast event to subscriber: %s", e)

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------

    def begin(self) -> int:
        """Enter LOADING for a new transaction and return its generation token."""
        self._generation += 1
        self._cancel_revert()
        self._set(ScanStatus.LOADING)
        return self._generation

    def succeed(self, token: int) -> bool:
        return self._finish(token, ScanStatus.SUCCESS)

    def fail(self, token: int, message: str) -> bool:
        return self._finish(token, ScanStatus.ERROR, message)

    def settle_idle(self, token: int) -> bool:
        """End a transaction without a result (operator cancelled)."""
        if not self.is_current(token):
            logger.info("Ignoring idle transition for stale generation %d (current=%d)", token, self._generation)
            return False
        self._set(ScanStatus.IDLE)
        return True

    def fail_now(self, message: str) -> None:
        """Show an error that did not come from a transaction (e.g. missing settings)."""
        self._generation += 1
        self._cancel_revert()
        self._set(ScanStatus.ERROR, message)
        self._schedule_revert(self._generation)

    def reset(self) -> None:
        """Force IDLE and forget any pending revert or in-flight result."""
        self._generation += 1
        self._cancel_revert()
        self._set(ScanStatus.IDLE)

    async def aclose(self) -> None:
        task = self._revert_task
        self._cancel_revert()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _finish(self, token: int, status: ScanStatus, error: Optional[str] = None) -> bool:
        if not self.is_current(token):
            logger.info(
                "Ignoring %s for stale generation %d (current=%d)", status.value, token, self._generation
            )
            return False
        self._set(status, error)
        self._schedule_revert(token)
        return True

    def _set(self, status: ScanStatus, error: Optional[str] = None) -> None:
        previous = self._status
        self._status = status
        self._last_error = error
        if previous is not status:
            logger.debug("Status %s → %s", previous.value, status.value)
        self.publish("status", error=error)

    def _schedule_revert(self, token: int) -> None:
        self._cancel_revert()
        self._revert_task = asyncio.get_running_loop().create_task(
            self._revert_after(token), name="status-auto-revert"
        )

    def _cancel_revert(self) -> None:
        if self._revert_task and not self._revert_task.done():
            self._revert_task.cancel()
        self._revert_task = None

    async def _revert_after(self, token: int) -> None:
        await asyncio.sleep(self.revert_delay)
        if not self.is_current(token):
            logger.debug("Stale auto-revert for generation %d ignored", token)
            return
        if self._status in (ScanStatus.SUCCESS, ScanStatus.ERROR):
            self._set(ScanStatus.IDLE)


__all__ = ["StatusLifecycle"]
