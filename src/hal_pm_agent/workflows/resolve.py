from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.cancellation import CancellationToken
from ..hal.client import HalApiClient
from ..hal.models import TicketGetResponse
from ..hal.transport import ProgressCallback
from .steps import StepRunner


@dataclass(frozen=True)
class TicketRef:
    """Canonical identity of a ticket, resolved once per workflow.

    `reference` keeps what the user typed ("HAL-0012", "12", ...); later
    steps address the ticket by `display_id` or `primary_key` only.
    """

    reference: str
    display_id: str
    primary_key: Optional[str] = None
    repo_full_name: Optional[str] = None


async def resolve_ticket(
    runner: StepRunner,
    client: HalApiClient,
    reference: str,
    *,
    progress_label: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> tuple[TicketRef, TicketGetResponse]:
    """Fatal lookup of a user-supplied ticket reference."""
    fetched: TicketGetResponse = await runner.fatal(
        "resolve_ticket",
        lambda: client.get_ticket(
            reference,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
        ),
    )
    record = fetched.ticket
    ref = TicketRef(
        reference=reference,
        display_id=record.display_id or reference,
        primary_key=record.pk,
        repo_full_name=record.repo_full_name,
    )
    return ref, fetched


__all__ = ["TicketRef", "resolve_ticket"]
