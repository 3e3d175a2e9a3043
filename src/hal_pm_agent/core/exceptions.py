from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence


class HalAgentError(Exception):
    """Base error for the PM agent."""


class TransientError(HalAgentError):
    """Failure that may succeed if the same call is retried."""

    recoverable = True


class PermanentError(HalAgentError):
    """Failure that will not go away on retry."""

    recoverable = False


class ConfigError(PermanentError):
    """Invalid or unreadable configuration."""


class TicketValidationError(PermanentError):
    """Local input rejected before any request was sent."""

    def __init__(
        self,
        message: str,
        *,
        detected_placeholders: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.detected_placeholders = (
            list(detected_placeholders) if detected_placeholders is not None else None
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": str(self)}
        if self.detected_placeholders is not None:
            payload["detectedPlaceholders"] = list(self.detected_placeholders)
        return payload


class HalTransportError(HalAgentError):
    """The request did not produce an HTTP response."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class HalConnectionError(HalTransportError, TransientError):
    """Connection-level failure (refused, reset, DNS)."""


class HalTimeoutError(HalTransportError, TransientError):
    """The request exceeded its time limit."""


class StepFailed(HalAgentError):
    """A fatal workflow step failed; the workflow stops here."""

    def __init__(self, label: str, error: str) -> None:
        super().__init__(error)
        self.label = label
        self.error = error


class OperationCancelled(Exception):
    """The agent turn was cancelled from outside.

    Not a HalAgentError: handlers that fold agent errors into failure
    payloads let it through and the turn stays resumable.
    """

    def __init__(self, reason: Any = None) -> None:
        self.reason = reason
        super().__init__(_describe_reason(reason))


def _describe_reason(reason: Any) -> str:
    if reason is None:
        return "Operation cancelled"
    if isinstance(reason, BaseException):
        return str(reason) or type(reason).__name__
    return str(reason)


def is_cancellation(exc: BaseException) -> bool:
    return isinstance(exc, (OperationCancelled, asyncio.CancelledError))


__all__ = [
    "ConfigError",
    "HalAgentError",
    "HalConnectionError",
    "HalTimeoutError",
    "HalTransportError",
    "OperationCancelled",
    "PermanentError",
    "StepFailed",
    "TicketValidationError",
    "TransientError",
    "is_cancellation",
]
