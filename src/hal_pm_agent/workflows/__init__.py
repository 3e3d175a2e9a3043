from .create_red import create_or_reuse_red
from .create_ticket import create_ticket
from .ledger import CallLedger, ToolCallRecord
from .steps import StepKind, StepResult, StepRunner, WorkflowStep
from .ticket_ops import (
    evaluate_ticket_ready_tool,
    fetch_ticket_content,
    move_ticket_to_column,
    move_ticket_to_todo,
    update_ticket_body,
)

__all__ = [
    "CallLedger",
    "StepKind",
    "StepResult",
    "StepRunner",
    "ToolCallRecord",
    "WorkflowStep",
    "create_or_reuse_red",
    "create_ticket",
    "evaluate_ticket_ready_tool",
    "fetch_ticket_content",
    "move_ticket_to_column",
    "move_ticket_to_todo",
    "update_ticket_body",
]
