"""Failure kinds raised while processing a scanned code."""
from __future__ import annotations

from typing import Optional, Sequence

GENERIC_FAILURE_MESSAGE = "There was an error with the request. Please try again."


class FulfillmentError(RuntimeError):
    """Raised when a transaction step fails; `user_message` is shown to the operator."""

    def __init__(self, user_message: str, *, log_message: Optional[str] = None) -> None:
        super().__init__(log_message or user_message)
        self.user_message = user_message


class ConfigurationIncomplete(FulfillmentError):
    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Settings incomplete: " + ", ".join(self.missing),
            log_message=f"configuration missing {self.missing}",
        )


class TransportFailure(FulfillmentError):
    """The call produced no response (timeout, connection refused, ...)."""

    def __init__(self, log_message: str) -> None:
        super().__init__(GENERIC_FAILURE_MESSAGE, log_message=log_message)


class ServiceRejected(FulfillmentError):
    def __init__(self, user_message: str, *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(user_message, log_message=f"HTTP {status_code}: {user_message}")


class MalformedResponse(FulfillmentError):
    """Success response whose body is not what the protocol promises."""

    def __init__(self, log_message: str) -> None:
        super().__init__("Unexpected response from server", log_message=log_message)


__all__ = [
    "GENERIC_FAILURE_MESSAGE",
    "FulfillmentError",
    "ConfigurationIncomplete",
    "TransportFailure",
    "ServiceRejected",
    "MalformedResponse",
]
