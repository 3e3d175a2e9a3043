"""Single-purpose ticket tools: fetch, update body, move, promote, readiness check."""

from __future__ import annotations

from typing import Any, Optional, Union

from ..core.cancellation import CancellationToken
from ..core.exceptions import TicketValidationError
from ..hal.client import HalApiClient
from ..hal.models import TicketMoveResponse
from ..hal.transport import ProgressCallback
from ..tickets.body import ensure_no_placeholders, normalize_body_for_ready, normalize_title_line
from ..tickets.ids import parse_ticket_number, short_id
from ..tickets.readiness import ReadinessEvaluator, evaluate_ticket_ready
from .create_ticket import COL_TODO, COL_UNASSIGNED
from .ledger import CallLedger
from .resolve import resolve_ticket
from .steps import StepRunner, run_tool

LEDGER_BODY_PREVIEW_CHARS = 500
MOVE_TO_TODO_TOOL = "kanban_move_ticket_to_todo"
TODO_POSITIONS = ("top", "bottom")


async def fetch_ticket_content(
    client: HalApiClient,
    ticket_id: str,
    *,
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    async def _run() -> dict[str, Any]:
        runner = StepRunner("fetch_ticket_content")
        _, fetched = await resolve_ticket(
            runner,
            client,
            ticket_id,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
        ticket = fetched.ticket
        outcome: dict[str, Any] = {
            "success": True,
            "id": ticket.id or short_id(parse_ticket_number(ticket_id)),
        }
        if ticket.display_id:
            outcome["display_id"] = ticket.display_id
        if ticket.ticket_number is not None:
            outcome["ticket_number"] = ticket.ticket_number
        if ticket.repo_full_name:
            outcome["repo_full_name"] = ticket.repo_full_name
        body = fetched.body_md if fetched.body_md is not None else ticket.body_md
        outcome.update(
            {
                "title": ticket.title,
                "body_md": body or "",
                "kanban_column_id": ticket.kanban_column_id,
                "artifacts": fetched.artifacts,
            }
        )
        if fetched.artifacts_error:
            outcome["artifacts_error"] = fetched.artifacts_error
        return outcome

    return await run_tool(
        "fetch_ticket_content", {"ticket_id": ticket_id}, _run, ledger
    )


async def update_ticket_body(
    client: HalApiClient,
    ticket_id: str,
    body_md: str,
    *,
    readiness: ReadinessEvaluator = evaluate_ticket_ready,
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    async def _run() -> dict[str, Any]:
        ensure_no_placeholders(body_md.strip(), action="Ticket update")
        normalized = normalize_body_for_ready(body_md)

        runner = StepRunner("update_ticket_body")
        ticket, _ = await resolve_ticket(
            runner,
            client,
            ticket_id,
            progress_label=f"Fetching ticket {ticket_id} for update…",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
        final_body = normalize_title_line(normalized, ticket.display_id)
        await runner.fatal(
            "update_ticket_body",
            lambda: client.update_ticket_body(
                ticket.display_id,
                final_body,
                ticket_pk=ticket.primary_key,
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        check = readiness(final_body)
        outcome: dict[str, Any] = {
            "success": True,
            "ticket_id": ticket.display_id,
            "ready": check.ready,
        }
        if check.missing_items:
            outcome["missingItems"] = list(check.missing_items)
        return outcome

    return await run_tool(
        "update_ticket_body",
        {"ticket_id": ticket_id, "body_md": body_md},
        _run,
        ledger,
    )


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


async def move_ticket_to_column(
    client: HalApiClient,
    ticket_id: str,
    *,
    column_id: Optional[str] = None,
    column_name: Optional[str] = None,
    position: Optional[Union[str, int]] = None,
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    tool_input = {
        "ticket_id": ticket_id,
        "column_id": column_id,
        "column_name": column_name,
        "position": position,
    }

    async def _run() -> dict[str, Any]:
        target_id = _clean_optional(column_id)
        target_name = _clean_optional(column_name)
        if not target_id and not target_name:
            raise TicketValidationError("Either column_name or column_id must be provided.")
        runner = StepRunner("move_ticket_to_column")
        moved: TicketMoveResponse = await runner.fatal(
            "move_ticket",
            lambda: client.move_ticket(
                ticket_id,
                column_id=target_id,
                column_name=target_name,
                position=position,
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        outcome: dict[str, Any] = {
            "success": True,
            "ticket_id": ticket_id,
            "column_id": moved.column_id or target_id,
        }
        if moved.column_name:
            outcome["column_name"] = moved.column_name
        outcome["position"] = moved.position
        outcome["moved_at"] = moved.moved_at
        return outcome

    return await run_tool("move_ticket_to_column", tool_input, _run, ledger)


async def move_ticket_to_todo(
    client: HalApiClient,
    ticket_id: str,
    *,
    position: Optional[str] = None,
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    """Promote a ticket from Unassigned to To Do.

    Tickets already past Unassigned are refused without a move request. A
    ticket with no column counts as Unassigned.
    """
    tool_input = {"ticket_id": ticket_id, "position": position}

    async def _run() -> dict[str, Any]:
        target_position = _clean_optional(position) or "bottom"
        if target_position not in TODO_POSITIONS:
            raise TicketValidationError(
                f"position must be \"top\" or \"bottom\", got {position!r}."
            )
        runner = StepRunner(MOVE_TO_TODO_TOOL)
        ticket, fetched = await resolve_ticket(
            runner,
            client,
            ticket_id,
            progress_label=f"Checking current column for {ticket_id}…",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
        current = fetched.ticket.kanban_column_id
        if current not in (None, "", COL_UNASSIGNED):
            raise TicketValidationError(
                f"Ticket is not in Unassigned (current column: {current}). "
                "Only tickets in Unassigned can be moved to To Do."
            )
        await runner.fatal(
            "move_to_todo",
            lambda: client.move_ticket(
                ticket.display_id,
                column_id=COL_TODO,
                position=target_position,
                progress_label=f"Moving {ticket.display_id} to To Do…",
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        return {
            "success": True,
            "ticketId": ticket.display_id,
            "fromColumn": COL_UNASSIGNED,
            "toColumn": COL_TODO,
        }

    return await run_tool(MOVE_TO_TODO_TOOL, tool_input, _run, ledger)


def evaluate_ticket_ready_tool(
    body_md: str,
    *,
    readiness: ReadinessEvaluator = evaluate_ticket_ready,
    ledger: Optional[CallLedger] = None,
) -> dict[str, Any]:
    """Local readiness check; the ledger keeps only a preview of the body."""
    body = body_md if isinstance(body_md, str) else ""
    outcome = readiness(body).to_dict()
    if ledger is not None:
        preview = body[:LEDGER_BODY_PREVIEW_CHARS]
        if len(body) > LEDGER_BODY_PREVIEW_CHARS:
            preview += "..."
        ledger.record("evaluate_ticket_ready", {"body_md": preview}, outcome)
    return outcome


__all__ = [
    "MOVE_TO_TODO_TOOL",
    "evaluate_ticket_ready_tool",
    "fetch_ticket_content",
    "move_ticket_to_column",
    "move_ticket_to_todo",
    "update_ticket_body",
]
