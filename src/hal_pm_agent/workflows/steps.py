from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..core.exceptions import StepFailed, TicketValidationError, is_cancellation
from ..core.logging_utils import log_event
from ..hal.models import ApiOk, ApiRejected
from .ledger import CallLedger

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


StepAction = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class WorkflowStep:
    label: str
    kind: StepKind
    action: StepAction


@dataclass(frozen=True)
class StepResult:
    label: str
    kind: StepKind
    ok: bool
    value: Any = None
    error: Optional[str] = None


class StepRunner:
    """Runs workflow steps and applies the failure policy of each step's kind.

    A step fails when its action raises or returns `ApiRejected`. Fatal
    failures raise `StepFailed`; best-effort failures are logged and returned.
    Cancellation always propagates unchanged.
    """

    def __init__(self, workflow: str) -> None:
        self.workflow = workflow
        self.failures: dict[str, str] = {}

    async def fatal(self, label: str, action: StepAction) -> Any:
        return (await self.run(WorkflowStep(label, StepKind.FATAL, action))).value

    async def best_effort(self, label: str, action: StepAction) -> StepResult:
        return await self.run(WorkflowStep(label, StepKind.BEST_EFFORT, action))

    async def run(self, step: WorkflowStep) -> StepResult:
        try:
            value = await step.action()
        except BaseException as exc:
            if is_cancellation(exc) or not isinstance(exc, Exception):
                raise
            return self._failed(step, str(exc) or type(exc).__name__, exc=exc)
        if isinstance(value, ApiRejected):
            return self._failed(step, value.error)
        if isinstance(value, ApiOk):
            value = value.data
        log_event(
            logger,
            logging.DEBUG,
            "workflow.step.ok",
            workflow=self.workflow,
            step=step.label,
        )
        return StepResult(step.label, step.kind, True, value=value)

    def _failed(
        self, step: WorkflowStep, error: str, *, exc: Optional[Exception] = None
    ) -> StepResult:
        if step.kind is StepKind.FATAL:
            log_event(
                logger,
                logging.WARNING,
                "workflow.step.failed",
                workflow=self.workflow,
                step=step.label,
                reason=error,
                exc=exc,
            )
            raise StepFailed(step.label, error) from exc
        self.failures[step.label] = error
        log_event(
            logger,
            logging.WARNING,
            "workflow.step.best_effort_failed",
            workflow=self.workflow,
            step=step.label,
            reason=error,
            exc=exc,
        )
        return StepResult(step.label, step.kind, False, error=error)


async def run_tool(
    name: str,
    tool_input: Any,
    body: Callable[[], Awaitable[dict[str, Any]]],
    ledger: Optional[CallLedger] = None,
) -> dict[str, Any]:
    """Run one tool body and fold every non-cancellation error into a payload.

    The outcome is recorded once in `ledger`. Cancellation is re-raised before
    anything is recorded so the turn can be resumed.
    """
    try:
        outcome = await body()
    except TicketValidationError as exc:
        outcome = exc.to_payload()
    except StepFailed as exc:
        outcome = {"success": False, "error": exc.error}
    except Exception as exc:
        if is_cancellation(exc):
            raise
        log_event(logger, logging.ERROR, "workflow.unexpected_error", tool=name, exc=exc)
        logger.debug("Unexpected error in %s", name, exc_info=True)
        outcome = {"success": False, "error": str(exc) or type(exc).__name__}
    log_event(
        logger,
        logging.INFO,
        "workflow.outcome",
        tool=name,
        success=bool(outcome.get("success")),
        error=outcome.get("error"),
    )
    if ledger is not None:
        ledger.record(name, tool_input, outcome)
    return outcome


__all__ = [
    "StepAction",
    "StepKind",
    "StepResult",
    "StepRunner",
    "WorkflowStep",
    "run_tool",
]
