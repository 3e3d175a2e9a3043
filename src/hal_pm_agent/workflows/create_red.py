from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..core.cancellation import CancellationToken
from ..core.exceptions import StepFailed, TicketValidationError
from ..core.logging_utils import log_event
from ..hal.client import HalApiClient
from ..hal.models import RedInsertResponse
from ..hal.transport import ProgressCallback
from .idempotency import RedArtifactMirror, RedIdempotencyGuard
from .ledger import CallLedger
from .resolve import resolve_ticket
from .steps import StepRunner, run_tool

logger = logging.getLogger(__name__)

TOOL_NAME = "create_red_document_v2"
NEW_RED_NOTES = "Auto-validated for To Do gate (PM-generated RED)."


def parse_red_json(red_json_content: str) -> Any:
    try:
        return json.loads(red_json_content)
    except (TypeError, ValueError) as exc:
        raise TicketValidationError(f"Invalid JSON in red_json_content: {exc}") from exc


def _red_payload(red_id: str, version: int, ticket_pk: str, repo_full_name: str) -> dict[str, Any]:
    return {
        "success": True,
        "red_document": {
            "red_id": red_id,
            "version": version,
            "ticket_pk": ticket_pk,
            "repo_full_name": repo_full_name,
        },
    }


async def create_or_reuse_red(
    client: HalApiClient,
    ticket_id: str,
    red_json_content: str,
    *,
    created_by: str = "pm-agent",
    ledger: Optional[CallLedger] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    """Ensure a RED exists for the ticket, creating version 1 only when none does.

    The result has the same shape whether the RED was reused or created.
    """
    tool_input = {"ticket_id": ticket_id, "red_json_content": red_json_content}

    async def _run() -> dict[str, Any]:
        runner = StepRunner(TOOL_NAME)
        ticket, _ = await resolve_ticket(
            runner,
            client,
            ticket_id,
            progress_label=f"Fetching ticket {ticket_id} for RED…",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
        if not ticket.primary_key or not ticket.repo_full_name:
            raise StepFailed(
                "resolve_ticket",
                f"Could not determine ticket_pk or repo_full_name for ticket {ticket_id}.",
            )
        ticket_pk, repo_full_name = ticket.primary_key, ticket.repo_full_name

        mirror = RedArtifactMirror(
            client, cancel_token=cancel_token, on_progress=on_progress
        )
        guard = RedIdempotencyGuard(
            client,
            runner,
            mirror,
            created_by=created_by,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
        existing = await guard.resolve_or_none(ticket)
        if existing is not None:
            return _red_payload(existing.red_id, existing.version, ticket_pk, repo_full_name)

        red_json = parse_red_json(red_json_content)
        inserted: RedInsertResponse = await runner.fatal(
            "insert_red",
            lambda: client.insert_red(
                ticket_pk,
                repo_full_name,
                red_json,
                created_by=created_by,
                progress_label=f"Creating RED for {ticket_id}…",
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        record = inserted.red_document
        log_event(
            logger,
            logging.INFO,
            "red.created",
            ticket=ticket_id,
            red_id=record.red_id,
            version=record.version,
        )
        await runner.best_effort(
            "validate_new_red",
            lambda: client.validate_red(
                record.red_id,
                created_by=created_by,
                notes=NEW_RED_NOTES,
                progress_label=f"Validating RED for {ticket_id}…",
                cancel_token=cancel_token,
                on_progress=on_progress,
            ),
        )
        await runner.best_effort(
            "mirror_new_red", lambda: mirror.mirror_new(ticket, record, red_json)
        )
        return _red_payload(record.red_id, record.version, ticket_pk, repo_full_name)

    return await run_tool(TOOL_NAME, tool_input, _run, ledger)


__all__ = ["NEW_RED_NOTES", "TOOL_NAME", "create_or_reuse_red", "parse_red_json"]
