"""Scan controller orchestration for the fieldscan device."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set, Union

import httpx

from .backend.http_client import FulfillmentHttpClient
from .config import (
    OperatorConfig,
    Settings,
    SettingsStore,
    JsonFileSettingsStore,
    get_settings,
    load_operator_config,
    save_operator_config,
)
from .confirmation import ConfirmationGate
from .gate import Clock, ScanEventGate
from .orchestrator import build_orchestrator
from .state import ConfirmationDecision, ControllerEvent, GateDecision, ScanEvent, ScanStatus
from .status import StatusLifecycle

logger = logging.getLogger(__name__)


class ScanController:
    """Coordinates the scan gate, the fulfillment flow and UI status updates."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        store: Optional[SettingsStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self._store: SettingsStore = store or JsonFileSettingsStore(self.settings.settings_store_path)
        self._config: OperatorConfig = load_operator_config(self._store, self.settings)

        self.status = StatusLifecycle(
            revert_delay=self.settings.timing.status_revert_ms / 1000.0,
            queue_size=self.settings.ui_event_queue_size,
        )
        self.gate = ScanEventGate(self.status, cooldown_ms=self.settings.timing.scan_cooldown_ms, clock=clock)
        self.confirmation = ConfirmationGate(self.status)
        self._http_client = FulfillmentHttpClient(self.settings, transport=transport)
        self.orchestrator = build_orchestrator(
            self.settings,
            client=self._http_client,
            status=self.status,
            config_provider=lambda: self._config,
            confirmation=self.confirmation,
        )
        # Tasks abandoned by reset() may still be waiting on the network
        self._transactions: Set[asyncio.Task[None]] = set()

    @property
    def config(self) -> OperatorConfig:
        return self._config

    async def start(self) -> None:
        self._config = load_operator_config(self._store, self.settings)
        missing = self._config.missing_fields(self.orchestrator.required_fields)
        logger.info("Starting scan controller (protocol=%s)", self.orchestrator.protocol)
        if missing:
            logger.warning("⚙️ Operator settings incomplete: %s", ", ".join(missing))

    async def stop(self) -> None:
        logger.info("Stopping scan controller")
        for task in list(self._transactions):
            task.cancel()
        for task in list(self._transactions):
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error stopping transaction task: %s", e)
        self._transactions.clear()
        await self.status.aclose()
        await self._http_client.aclose()
        logger.info("Scan controller stopped")

    # ------------------------------------------------------------
    # UI subscribers
    # ------------------------------------------------------------

    def register_ui(self) -> asyncio.Queue[ControllerEvent]:
        return self.status.register_ui()

    def unregister_ui(self, queue: asyncio.Queue[ControllerEvent]) -> None:
        self.status.unregister_ui(queue)

    # ------------------------------------------------------------
    # Operator / camera inputs
    # ------------------------------------------------------------

    def on_scan(self, text: str) -> GateDecision:
        """Offer one decoded camera text; starts a transaction when admitted."""
        decision = self.gate.accept(ScanEvent(text=text))
        if decision.admitted and decision.text is not None:
            self.status.publish("scan", {"text": decision.text})
            task = self.orchestrator.handle(decision.text)
            if task is not None:
                self._transactions.add(task)
                task.add_done_callback(self._transactions.discard)
        return decision

    def reset(self) -> None:
        """Operator reset: forget the last scan and force the status to idle."""
        if self.confirmation.pending is not None:
            logger.info("Reset while awaiting confirmation - treating as cancel")
            self.confirmation.resolve(ConfirmationDecision.CANCEL)
        self.gate.reset()
        self.status.publish("reset")
        logger.info("🔄 Scan state reset")

    def resolve_confirmation(self, decision: Union[ConfirmationDecision, str]) -> bool:
        return self.confirmation.resolve(decision)

    def save_config(self, config: OperatorConfig, *, clear_credential: bool = False) -> OperatorConfig:
        """Persist operator settings and re-read them from the store."""
        save_operator_config(self._store, config, clear_credential=clear_credential)
        self._config = load_operator_config(self._store, self.settings)
        logger.info("⚙️ Operator settings saved (endpoint=%s)", self._config.endpoint_url or "-")
        self.status.publish("settings_saved")
        return self._config

    async def wait_for_transaction(self) -> None:
        """Wait until every started transaction has finished."""
        if self._transactions:
            await asyncio.gather(*list(self._transactions), return_exceptions=True)

    def describe(self) -> Dict[str, Any]:
        pending = self.orchestrator.pending
        return {
            "status": self.status.status.value,
            "protocol": self.orchestrator.protocol,
            "last_admitted": self.gate.last_admitted,
            "stage": pending.stage.value if pending else None,
            "config_complete": not self._config.missing_fields(self.orchestrator.required_fields),
        }

    @property
    def current_status(self) -> ScanStatus:
        return self.status.status


__all__ = ["ScanController"]
