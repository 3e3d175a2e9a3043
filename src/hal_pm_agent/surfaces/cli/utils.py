from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

logger = logging.getLogger("hal_pm_agent.cli")

EXIT_FAILED = 1
EXIT_CANCELLED = 3


def get_version() -> str:
    import importlib.metadata

    try:
        return importlib.metadata.version("hal-pm-agent")
    except importlib.metadata.PackageNotFoundError:
        from ... import __version__

        return __version__


def raise_exit(
    message: str, *, cause: Optional[BaseException] = None, code: int = EXIT_FAILED
) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=code) from cause
    raise typer.Exit(code=code)


def read_text_file(path: Path, *, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise_exit(f"Failed to read {label}: {exc}", cause=exc)


def emit_json(payload: Any, *, pretty: bool) -> None:
    typer.echo(json.dumps(payload, indent=2 if pretty else None, ensure_ascii=False))


def echo_progress(message: str) -> None:
    typer.echo(message, err=True)


__all__ = [
    "EXIT_CANCELLED",
    "EXIT_FAILED",
    "echo_progress",
    "emit_json",
    "get_version",
    "raise_exit",
    "read_text_file",
]
