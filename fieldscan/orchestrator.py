"""Drives one admitted scan through the fulfillment service."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Optional, Tuple

from .backend.http_client import FulfillmentHttpClient
from .config import OperatorConfig, Settings
from .confirmation import ConfirmationGate
from .errors import (
    GENERIC_FAILURE_MESSAGE,
    ConfigurationIncomplete,
    FulfillmentError,
    MalformedResponse,
    ServiceRejected,
    TransportFailure,
)
from .state import ConfirmationDecision, OrderRef, PendingTransaction, TransactionStage
from .status import StatusLifecycle

logger = logging.getLogger(__name__)

ConfigProvider = Callable[[], OperatorConfig]


class FulfillmentOrchestrator:
    """
    Base flow shared by both protocol shapes.

    `handle()` checks the operator configuration, opens a transaction (status
    LOADING), runs the protocol-specific steps and maps every outcome onto the
    status lifecycle. Deduplication is the gate's job, not ours.
    """

    protocol: str = ""
    required_fields: Tuple[str, ...] = ("endpoint_url", "volunteer_code")
    initial_stage: TransactionStage = TransactionStage.LOOKUP

    def __init__(
        self,
        *,
        client: FulfillmentHttpClient,
        status: StatusLifecycle,
        config_provider: ConfigProvider,
    ) -> None:
        self._client = client
        self._status = status
        self._config = config_provider
        self._pending: Optional[PendingTransaction] = None

    @property
    def pending(self) -> Optional[PendingTransaction]:
        return self._pending

    def handle(self, code: str) -> Optional[asyncio.Task[None]]:
        """
        Start a transaction for an admitted code.

        The configuration check and the LOADING transition happen before this
        returns, so the gate sees a busy status immediately. The network steps
        run in the returned task; None means no transaction was opened.
        """
        config = self._config()
        missing = config.missing_fields(self.required_fields)
        if missing:
            self._configuration_incomplete(ConfigurationIncomplete(missing))
            return None

        token = self._status.begin()
        txn = PendingTransaction(code=code, stage=self.initial_stage)
        self._pending = txn
        logger.info("🎬 Transaction started for %s (%s)", code, self.protocol)
        return asyncio.create_task(self._execute(txn, config, token), name="fulfillment-transaction")

    async def _execute(self, txn: PendingTransaction, config: OperatorConfig, token: int) -> None:
        code = txn.code
        try:
            await self._run(txn, config, token)
        except asyncio.CancelledError:
            logger.info("⚠️ Transaction for %s cancelled", code)
            txn.stage = TransactionStage.FAILED
            self._status.settle_idle(token)
            raise
        except TransportFailure as exc:
            logger.error("❌ Transport failure for %s: %s", code, exc)
            self._failed(txn, token, exc.user_message)
        except MalformedResponse as exc:
            logger.error("❌ Malformed response for %s: %s", code, exc)
            self._failed(txn, token, exc.user_message)
        except ServiceRejected as exc:
            logger.error("❌ Service rejected %s: %s", code, exc)
            self._failed(txn, token, exc.user_message)
        except FulfillmentError as exc:
            logger.error("❌ Transaction failed for %s: %s", code, exc)
            self._failed(txn, token, exc.user_message)
        except Exception as exc:
            logger.exception("❌ Unexpected transaction error for %s: %s", code, exc)
            self._failed(txn, token, GENERIC_FAILURE_MESSAGE)
        finally:
            if self._pending is txn:
                self._pending = None
            elapsed = time.monotonic() - txn.created_at
            logger.info("🏁 Transaction for %s ended (%s) after %.2fs", code, txn.stage.value, elapsed)

    async def _run(self, txn: PendingTransaction, config: OperatorConfig, token: int) -> None:
        raise NotImplementedError

    def _succeeded(self, txn: PendingTransaction, token: int) -> None:
        txn.stage = TransactionStage.DELIVERED
        self._status.succeed(token)

    def _failed(self, txn: PendingTransaction, token: int, message: str) -> None:
        txn.stage = TransactionStage.FAILED
        if self._status.fail(token, message):
            self._status.publish("notice", {"title": "API Request Failed", "message": message}, error=message)

    def _configuration_incomplete(self, exc: ConfigurationIncomplete) -> None:
        logger.warning("⚙️ Not calling the service: %s", exc)
        self._status.fail_now(exc.user_message)
        self._status.publish(
            "notice", {"title": "Configuration required", "message": exc.user_message}, error=exc.user_message
        )


class SingleStepOrchestrator(FulfillmentOrchestrator):
    """One submission call carrying the code and the volunteer context."""

    protocol = "single_step"
    required_fields = ("endpoint_url", "category", "volunteer_code")
    initial_stage = TransactionStage.SUBMITTING

    async def _run(self, txn: PendingTransaction, config: OperatorConfig, token: int) -> None:
        await self._client.submit(config, txn.code)
        self._succeeded(txn, token)

    def _configuration_incomplete(self, exc: ConfigurationIncomplete) -> None:
        super()._configuration_incomplete(exc)
        # Route the operator into the settings screen
        self._status.publish("settings_required", {"missing": exc.missing})


class TwoStepOrchestrator(FulfillmentOrchestrator):
    """Lookup, operator confirmation, then delivery."""

    protocol = "two_step"

    def __init__(self, *, confirmation: ConfirmationGate, **kwargs) -> None:
        super().__init__(**kwargs)
        self._confirmation = confirmation

    async def _run(self, txn: PendingTransaction, config: OperatorConfig, token: int) -> None:
        records = await self._client.lookup(config, txn.code)
        if not records:
            raise MalformedResponse(f"lookup for {txn.code} returned no orders")
        try:
            txn.order = OrderRef.from_record(records[0])
        except (KeyError, TypeError) as exc:
            raise MalformedResponse(f"lookup for {txn.code} returned an incomplete order: {exc}") from exc
        logger.info("📦 Order %s found for %s (size=%s)", txn.order.id, txn.code, txn.order.size)
        if not self._status.is_current(token):
            # Operator reset while the lookup was in flight
            logger.info("Transaction for %s abandoned before confirmation", txn.code)
            txn.stage = TransactionStage.FAILED
            return

        txn.stage = TransactionStage.AWAITING_CONFIRMATION
        decision = await self._confirmation.confirm(txn.order)
        if decision is ConfirmationDecision.CANCEL:
            txn.stage = TransactionStage.REJECTED
            self._status.settle_idle(token)
            return

        txn.stage = TransactionStage.DELIVERING
        await self._client.deliver(config, txn.order.id)
        self._succeeded(txn, token)


def build_orchestrator(
    settings: Settings,
    *,
    client: FulfillmentHttpClient,
    status: StatusLifecycle,
    config_provider: ConfigProvider,
    confirmation: ConfirmationGate,
) -> FulfillmentOrchestrator:
    """Pick the strategy for the deployed service; only one is active per process."""

    if settings.protocol == "single_step":
        return SingleStepOrchestrator(client=client, status=status, config_provider=config_provider)
    return TwoStepOrchestrator(
        client=client, status=status, config_provider=config_provider, confirmation=confirmation
    )


__all__ = [
    "FulfillmentOrchestrator",
    "SingleStepOrchestrator",
    "TwoStepOrchestrator",
    "build_orchestrator",
]
