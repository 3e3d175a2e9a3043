from __future__ import annotations

from typing import Any, Optional

from ..core.cancellation import CancellationToken
from ..core.config import DEFAULT_PROJECT_ID
from ..hal.client import HalApiClient
from ..hal.models import TicketCreateResponse
from ..hal.transport import ProgressCallback
from ..tickets.body import ensure_no_placeholders, normalize_body_for_ready, normalize_title_line
from ..tickets.ids import parse_ticket_number, short_id, ticket_filename
from ..tickets.readiness import ReadinessEvaluator, evaluate_ticket_ready
from .ledger import CallLedger
from .steps import StepRunner, run_tool

TOOL_NAME = "create_ticket"
COL_UNASSIGNED = "col-unassigned"
COL_TODO = "col-todo"


async def create_ticket(
    client: HalApiClient,
    title: str,
    body_md: str,
    *,
    repo_full_name: str = DEFAULT_PROJECT_ID,
    readiness: ReadinessEvaluator = evaluate_ticket_ready,
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    """Create a ticket in Unassigned and promote it to To Do when it is ready.

    Only the create call is fatal. Persisting the title-normalized body and
    the auto-move are best-effort: the ticket exists once create succeeds.
    """
    tool_input = {"title": title, "body_md": body_md}
    repo = (repo_full_name or "").strip() or DEFAULT_PROJECT_ID

    async def _run() -> dict[str, Any]:
        ensure_no_placeholders(body_md.strip(), action="Ticket creation")
        normalized = normalize_body_for_ready(body_md)
        clean_title = title.strip()

        runner = StepRunner(TOOL_NAME)
        created: TicketCreateResponse = await runner.fatal(
            "create_ticket",
            lambda: client.create_ticket(
                clean_title,
                normalized,
                repo,
                COL_UNASSIGNED,
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        display_id = created.ticket_id
        ticket_number = parse_ticket_number(display_id)

        final_body = normalize_title_line(normalized, display_id)
        await runner.best_effort(
            "persist_normalized_body",
            lambda: client.update_ticket_body(
                display_id,
                final_body,
                ticket_pk=created.pk,
                progress_label=f"Normalizing ticket body for {display_id}",
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )

        check = readiness(final_body)
        outcome: dict[str, Any] = {
            "success": True,
            "id": short_id(ticket_number),
            "display_id": display_id,
        }
        if ticket_number is not None:
            outcome["ticket_number"] = ticket_number
        outcome.update(
            {
                "repo_full_name": repo,
                "filename": ticket_filename(display_id, title),
                "ready": check.ready,
            }
        )
        if check.missing_items:
            outcome["missingItems"] = list(check.missing_items)

        if check.ready:
            moved = await runner.best_effort(
                "auto_move_to_todo",
                lambda: client.move_ticket(
                    display_id,
                    column_id=COL_TODO,
                    position="bottom",
                    fallback_error="Failed to move to To Do",
                    progress_label=f"Moving {display_id} to To Do…",
                    cancel_token=cancel_token,
                    on_progress=on_progress,
                ),
            )
            if moved.ok:
                outcome["movedToTodo"] = True
            else:
                outcome["moveError"] = moved.error or "Failed to move to To Do"
        return outcome

    return await run_tool(TOOL_NAME, tool_input, _run, ledger)


__all__ = ["COL_TODO", "COL_UNASSIGNED", "TOOL_NAME", "create_ticket"]
