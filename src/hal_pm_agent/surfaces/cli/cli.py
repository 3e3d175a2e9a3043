import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import httpx
import typer

from ...agent import PmAgentTools, build_agent_tools
from ...core.cancellation import CancellationToken
from ...core.config import AgentConfig, load_agent_config
from ...core.exceptions import ConfigError, OperationCancelled
from ...core.logging_utils import setup_rotating_logger
from ...workflows.ticket_ops import evaluate_ticket_ready_tool
from .utils import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    echo_progress,
    emit_json,
    get_version,
    raise_exit,
    read_text_file,
)

logger = logging.getLogger("hal_pm_agent.cli")

app = typer.Typer(add_completion=False, help="HAL project-manager agent tools.")

ToolInvocation = Callable[[PmAgentTools, CancellationToken], Awaitable[dict[str, Any]]]


@dataclasses.dataclass
class CliState:
    root: Optional[Path] = None
    base_url: Optional[str] = None
    budget_seconds: Optional[float] = None
    pretty: bool = False


def _http_client_factory() -> Optional[httpx.AsyncClient]:
    """Hook for tests; None lets the transport own its HTTP client."""
    return None


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"hal-pm-agent {get_version()}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    ctx: typer.Context,
    root: Optional[Path] = typer.Option(
        None, "--root", help="Directory holding hal-pm-agent.yml and .env"
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Override the HAL API base URL"
    ),
    budget_seconds: Optional[float] = typer.Option(
        None,
        "--budget-seconds",
        help="Cancel the turn after this many seconds (exit code 3)",
    ),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON output"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    ctx.obj = CliState(
        root=root, base_url=base_url, budget_seconds=budget_seconds, pretty=pretty
    )


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _load_config(state: CliState) -> AgentConfig:
    try:
        config = load_agent_config(state.root)
    except ConfigError as exc:
        raise_exit(f"Invalid configuration: {exc}", cause=exc)
    if state.base_url:
        config = dataclasses.replace(
            config,
            hal=dataclasses.replace(config.hal, base_url=state.base_url.rstrip("/")),
        )
    return config


def _run_tool(state: CliState, invoke: ToolInvocation) -> None:
    config = _load_config(state)
    setup_rotating_logger("hal_pm_agent", config.log)
    budget = (
        state.budget_seconds
        if state.budget_seconds is not None
        else config.turn_timeout_seconds
    )

    async def _turn() -> dict[str, Any]:
        token = CancellationToken()
        timer = token.cancel_after(budget) if budget else None
        tools = build_agent_tools(
            config, http_client=_http_client_factory(), on_progress=echo_progress
        )
        try:
            async with tools:
                return await invoke(tools, token)
        finally:
            if timer is not None:
                timer.cancel()

    try:
        outcome = asyncio.run(_turn())
    except OperationCancelled as exc:
        emit_json(
            {"success": False, "cancelled": True, "error": str(exc)},
            pretty=state.pretty,
        )
        raise_exit("Turn cancelled; resume later.", cause=exc, code=EXIT_CANCELLED)
    emit_json(outcome, pretty=state.pretty)
    if outcome.get("success") is False:
        raise typer.Exit(code=EXIT_FAILED)


@app.command("create-ticket")
def create_ticket_command(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", help="Ticket title"),
    body_file: Path = typer.Option(..., "--body-file", help="Markdown body file"),
) -> None:
    """Create a ticket and move it to To Do when it is ready."""
    body_md = read_text_file(body_file, label="body file")
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.create_ticket(title, body_md, cancel_token=token),
    )


@app.command("create-red")
def create_red_command(
    ctx: typer.Context,
    ticket: str = typer.Option(..., "--ticket", help="Ticket id (HAL-0012, 12, ...)"),
    red_file: Path = typer.Option(..., "--red-file", help="RED JSON file"),
) -> None:
    """Create the RED for a ticket, or reuse the existing one."""
    red_json = read_text_file(red_file, label="RED file")
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.create_or_reuse_red(
            ticket, red_json, cancel_token=token
        ),
    )


@app.command("fetch-ticket")
def fetch_ticket_command(
    ctx: typer.Context,
    ticket: str = typer.Option(..., "--ticket", help="Ticket id"),
) -> None:
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.fetch_ticket_content(ticket, cancel_token=token),
    )


@app.command("update-ticket")
def update_ticket_command(
    ctx: typer.Context,
    ticket: str = typer.Option(..., "--ticket", help="Ticket id"),
    body_file: Path = typer.Option(..., "--body-file", help="Markdown body file"),
) -> None:
    body_md = read_text_file(body_file, label="body file")
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.update_ticket_body(
            ticket, body_md, cancel_token=token
        ),
    )


@app.command("move-ticket")
def move_ticket_command(
    ctx: typer.Context,
    ticket: str = typer.Option(..., "--ticket", help="Ticket id"),
    column_id: Optional[str] = typer.Option(None, "--column-id"),
    column_name: Optional[str] = typer.Option(None, "--column-name"),
    position: Optional[str] = typer.Option(
        None, "--position", help='"top", "bottom" or a zero-based index'
    ),
) -> None:
    if not column_id and not column_name:
        raise_exit("Provide --column-id or --column-name.")
    parsed_position: Any = position
    if position is not None and position.strip().isdigit():
        parsed_position = int(position.strip())
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.move_ticket_to_column(
            ticket,
            column_id=column_id,
            column_name=column_name,
            position=parsed_position,
            cancel_token=token,
        ),
    )


@app.command("move-to-todo")
def move_to_todo_command(
    ctx: typer.Context,
    ticket: str = typer.Option(..., "--ticket", help="Ticket id"),
    position: str = typer.Option("bottom", "--position", help='"top" or "bottom"'),
) -> None:
    """Promote an Unassigned ticket to To Do."""
    _run_tool(
        _state(ctx),
        lambda tools, token: tools.move_ticket_to_todo(
            ticket, position=position, cancel_token=token
        ),
    )


@app.command("check-ready")
def check_ready_command(
    ctx: typer.Context,
    body_file: Path = typer.Option(..., "--body-file", help="Markdown body file"),
) -> None:
    """Evaluate a body against the Definition of Ready without calling HAL."""
    state = _state(ctx)
    outcome = evaluate_ticket_ready_tool(read_text_file(body_file, label="body file"))
    emit_json(outcome, pretty=state.pretty)
    if not outcome["ready"]:
        raise typer.Exit(code=EXIT_FAILED)


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


__all__ = ["app", "main"]
