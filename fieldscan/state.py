"""Shared controller state definitions for the fieldscan device."""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


class ScanStatus(str, enum.Enum):
    """
    Status shown to the operator:

    1. IDLE     - Ready for the next scan (grey indicator)
    2. LOADING  - A transaction is in flight (grey indicator)
    3. SUCCESS  - Last transaction succeeded (green overlay) → IDLE
    4. ERROR    - Last transaction failed (red overlay) → IDLE
    """
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class TransactionStage(str, enum.Enum):
    LOOKUP = "lookup"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DELIVERING = "delivering"
    SUBMITTING = "submitting"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    FAILED = "failed"


class ConfirmationDecision(str, enum.Enum):
    CANCEL = "cancel"
    CONFIRM = "confirm"


@dataclass(frozen=True)
class ScanEvent:
    text: str
    observed_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class GateDecision:
    """Result of offering a scan event to the gate; `text` is set only on admission."""

    admitted: bool
    text: Optional[str] = None

    @classmethod
    def admit(cls, text: str) -> "GateDecision":
        return cls(admitted=True, text=text)

    @classmethod
    def drop(cls) -> "GateDecision":
        return cls(admitted=False)


@dataclass(frozen=True)
class OrderRef:
    id: str
    size: str
    participant_email: str

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OrderRef":
        """
        Build from a lookup record.

        `id` and `participantEmail` must be present and non-blank; `size` must
        be present but may be empty. Raises KeyError for a missing field and
        TypeError when the record is not a mapping.
        """
        if not isinstance(record, Mapping):
            raise TypeError(f"order record must be an object, got {type(record).__name__}")
        order_id = record["id"]
        email = record["participantEmail"]
        size = record["size"]
        if order_id is None or str(order_id).strip() == "":
            raise KeyError("id")
        if email is None or str(email).strip() == "":
            raise KeyError("participantEmail")
        return cls(
            id=str(order_id),
            size="" if size is None else str(size),
            participant_email=str(email).strip(),
        )

    def to_payload(self) -> Dict[str, str]:
        return {"id": self.id, "size": self.size, "participantEmail": self.participant_email}


@dataclass
class PendingTransaction:
    code: str
    stage: TransactionStage
    order: Optional[OrderRef] = None
    created_at: float = field(default_factory=time.monotonic)


@dataclass
class ControllerEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    status: ScanStatus
    error: Optional[str] = None


__all__ = [
    "ScanStatus",
    "TransactionStage",
    "ConfirmationDecision",
    "ScanEvent",
    "GateDecision",
    "OrderRef",
    "PendingTransaction",
    "ControllerEvent",
]
