"""Agent-turn facade: the PM tools bound to one client and one call ledger."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from .core.cancellation import CancellationToken
from .core.config import AgentConfig
from .core.logging_utils import log_event
from .hal.client import HalApiClient
from .hal.transport import HalTransport, ProgressCallback
from .tickets.readiness import ReadinessEvaluator, evaluate_ticket_ready
from .workflows.create_red import create_or_reuse_red
from .workflows.create_ticket import create_ticket
from .workflows.ledger import CallLedger
from .workflows.ticket_ops import (
    evaluate_ticket_ready_tool,
    fetch_ticket_content,
    move_ticket_to_column,
    move_ticket_to_todo,
    update_ticket_body,
)

logger = logging.getLogger(__name__)

_TICKET_ID_SCHEMA = {
    "type": "string",
    "description": 'Ticket id (e.g. "HAL-0012", "0012", or "12").',
}

TOOL_DEFINITIONS: tuple[dict[str, Any], ...] = (
    {
        "name": "create_ticket",
        "description": (
            "Create a ticket in Unassigned. The body must not contain template "
            "placeholders. Ready tickets are moved to To Do automatically."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Short ticket title."},
                "body_md": {"type": "string", "description": "Full markdown body."},
            },
            "required": ["title", "body_md"],
            "additionalProperties": False,
        },
    },
    {
        "name": "create_red_document_v2",
        "description": (
            "Create the RED (Requirement Expansion Document) for a ticket, or "
            "reuse the existing one. Returns the RED id and version."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "ticket_id": _TICKET_ID_SCHEMA,
                "red_json_content": {
                    "type": "string",
                    "description": "RED document content as a JSON string.",
                },
            },
            "required": ["ticket_id", "red_json_content"],
            "additionalProperties": False,
        },
    },
    {
        "name": "fetch_ticket_content",
        "description": "Fetch a ticket's title, body, column and artifacts.",
        "parameters": {
            "type": "object",
            "properties": {"ticket_id": _TICKET_ID_SCHEMA},
            "required": ["ticket_id"],
            "additionalProperties": False,
        },
    },
    {
        "name": "update_ticket_body",
        "description": "Replace a ticket's markdown body. No placeholders allowed.",
        "parameters": {
            "type": "object",
            "properties": {
                "ticket_id": _TICKET_ID_SCHEMA,
                "body_md": {"type": "string", "description": "Full markdown body."},
            },
            "required": ["ticket_id", "body_md"],
            "additionalProperties": False,
        },
    },
    {
        "name": "move_ticket_to_column",
        "description": "Move a ticket to a column given by id or by name.",
        "parameters": {
            "type": "object",
            "properties": {
                "ticket_id": _TICKET_ID_SCHEMA,
                "column_id": {"type": ["string", "null"]},
                "column_name": {"type": ["string", "null"]},
                "position": {
                    "type": ["string", "integer", "null"],
                    "description": '"top", "bottom" or a zero-based index.',
                },
            },
            "required": ["ticket_id"],
            "additionalProperties": False,
        },
    },
    {
        "name": "kanban_move_ticket_to_todo",
        "description": (
            "Move a ticket from Unassigned to To Do. Only call after "
            "evaluate_ticket_ready returns ready: true."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "ticket_id": _TICKET_ID_SCHEMA,
                "position": {
                    "type": ["string", "null"],
                    "enum": ["top", "bottom", None],
                    "description": '"top" for the first card, "bottom" (default) for the last.',
                },
            },
            "required": ["ticket_id"],
            "additionalProperties": False,
        },
    },
    {
        "name": "evaluate_ticket_ready",
        "description": (
            "Evaluate a ticket body against the Definition of Ready. Returns "
            "ready, missingItems and the checklist."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "body_md": {"type": "string", "description": "Full markdown body."}
            },
            "required": ["body_md"],
            "additionalProperties": False,
        },
    },
)

TOOL_NAMES = tuple(definition["name"] for definition in TOOL_DEFINITIONS)


class PmAgentTools:
    """The PM agent's ticket tools for one agent turn.

    Every outcome lands in `ledger` exactly once. Cancellation raised through
    `cancel_token` propagates out of each tool untouched.
    """

    def __init__(
        self,
        client: HalApiClient,
        *,
        project_id: str,
        created_by: str = "pm-agent",
        ledger: Optional[CallLedger] = None,
        readiness: ReadinessEvaluator = evaluate_ticket_ready,
    ) -> None:
        self.client = client
        self.project_id = project_id
        self.created_by = created_by
        self.ledger = ledger if ledger is not None else CallLedger()
        self.readiness = readiness

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "PmAgentTools":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def create_ticket(
        self,
        title: str,
        body_md: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await create_ticket(
            self.client,
            title,
            body_md,
            repo_full_name=self.project_id,
            readiness=self.readiness,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def create_or_reuse_red(
        self,
        ticket_id: str,
        red_json_content: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await create_or_reuse_red(
            self.client,
            ticket_id,
            red_json_content,
            created_by=self.created_by,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def fetch_ticket_content(
        self,
        ticket_id: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await fetch_ticket_content(
            self.client,
            ticket_id,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def update_ticket_body(
        self,
        ticket_id: str,
        body_md: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await update_ticket_body(
            self.client,
            ticket_id,
            body_md,
            readiness=self.readiness,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def move_ticket_to_column(
        self,
        ticket_id: str,
        *,
        column_id: Optional[str] = None,
        column_name: Optional[str] = None,
        position: Any = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await move_ticket_to_column(
            self.client,
            ticket_id,
            column_id=column_id,
            column_name=column_name,
            position=position,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def move_ticket_to_todo(
        self,
        ticket_id: str,
        *,
        position: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await move_ticket_to_todo(
            self.client,
            ticket_id,
            position=position,
            ledger=self.ledger,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def evaluate_ticket_ready(
        self,
        body_md: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return evaluate_ticket_ready_tool(
            body_md, readiness=self.readiness, ledger=self.ledger
        )

    async def dispatch(
        self,
        name: str,
        arguments: Mapping[str, Any],
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        """Route one tool call from the model runtime by tool name."""
        args = dict(arguments or {})
        io: dict[str, Any] = {"cancel_token": cancel_token, "on_progress": on_progress}
        try:
            if name == "create_ticket":
                return await self.create_ticket(args["title"], args["body_md"], **io)
            if name == "create_red_document_v2":
                return await self.create_or_reuse_red(
                    args["ticket_id"], args["red_json_content"], **io
                )
            if name == "fetch_ticket_content":
                return await self.fetch_ticket_content(args["ticket_id"], **io)
            if name == "update_ticket_body":
                return await self.update_ticket_body(
                    args["ticket_id"], args["body_md"], **io
                )
            if name == "move_ticket_to_column":
                return await self.move_ticket_to_column(
                    args["ticket_id"],
                    column_id=args.get("column_id"),
                    column_name=args.get("column_name"),
                    position=args.get("position"),
                    **io,
                )
            if name == "kanban_move_ticket_to_todo":
                return await self.move_ticket_to_todo(
                    args["ticket_id"], position=args.get("position"), **io
                )
            if name == "evaluate_ticket_ready":
                return await self.evaluate_ticket_ready(args["body_md"], **io)
        except KeyError as exc:
            return self._reject(name, args, f"Missing required argument: {exc.args[0]}")
        return self._reject(name, args, f"Unknown tool: {name}")

    def _reject(self, name: str, args: dict[str, Any], error: str) -> dict[str, Any]:
        log_event(logger, logging.WARNING, "agent.tool_rejected", tool=name, reason=error)
        outcome = {"success": False, "error": error}
        self.ledger.record(name, args, outcome)
        return outcome


def build_agent_tools(
    config: AgentConfig,
    *,
    ledger: Optional[CallLedger] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> PmAgentTools:
    transport = HalTransport(
        config.hal.base_url, client=http_client, on_progress=on_progress
    )
    client = HalApiClient(
        transport,
        read_timeout_ms=config.hal.read_timeout_ms,
        write_timeout_ms=config.hal.write_timeout_ms,
        retry=config.hal.retry,
    )
    return PmAgentTools(
        client,
        project_id=config.project_id,
        created_by=config.created_by,
        ledger=ledger,
    )


__all__ = ["PmAgentTools", "TOOL_DEFINITIONS", "TOOL_NAMES", "build_agent_tools"]
