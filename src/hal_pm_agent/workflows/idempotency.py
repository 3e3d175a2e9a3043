"""Reuse of existing RED documents and their markdown artifact mirror."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from ..core.cancellation import CancellationToken
from ..core.logging_utils import log_event
from ..core.time_utils import now_iso_utc_z
from ..hal.client import HalApiClient
from ..hal.models import ApiOk, ApiRejected, RedDocumentRecord, RedListResponse, RedVersionSummary
from ..hal.transport import ProgressCallback
from ..tickets.red_artifact import RED_ARTIFACT_TYPE, red_artifact_title, render_red_artifact
from .resolve import TicketRef
from .steps import StepRunner

logger = logging.getLogger(__name__)

EXISTING_RED_NOTES = "Auto-validated existing RED for To Do gate."


class RedArtifactMirror:
    """Publishes a RED as a markdown artifact on its ticket."""

    def __init__(
        self,
        client: HalApiClient,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._client = client
        self._cancel_token = cancel_token
        self._on_progress = on_progress

    async def mirror_existing(
        self, ticket: TicketRef, summary: RedVersionSummary
    ) -> Union[ApiOk[Any], ApiRejected, None]:
        """Mirror a listed version; returns None when the API has no JSON for it."""
        fetched = await self._client.get_red(
            ticket.primary_key or "",
            ticket.reference,
            ticket.repo_full_name or "",
            summary.version,
            progress_label=f"Loading latest RED JSON for {ticket.reference}…",
            cancel_token=self._cancel_token,
            on_progress=self._on_progress,
        )
        if isinstance(fetched, ApiRejected):
            return fetched
        document = fetched.data.red_document
        if document.red_json is None:
            return None
        return await self._publish(
            ticket,
            red_id=summary.red_id,
            version=summary.version or document.version,
            created_at=document.created_at,
            validation_status=document.validation_status,
            red_json=document.red_json,
        )

    async def mirror_new(
        self, ticket: TicketRef, record: RedDocumentRecord, submitted_json: Any
    ) -> Union[ApiOk[Any], ApiRejected]:
        return await self._publish(
            ticket,
            red_id=record.red_id,
            version=record.version,
            created_at=record.created_at,
            validation_status=record.validation_status,
            red_json=record.red_json if record.red_json is not None else submitted_json,
        )

    async def _publish(
        self,
        ticket: TicketRef,
        *,
        red_id: str,
        version: int,
        created_at: Optional[str],
        validation_status: Optional[str],
        red_json: Any,
    ) -> Union[ApiOk[Any], ApiRejected]:
        created = created_at or now_iso_utc_z()
        return await self._client.insert_artifact(
            ticket.primary_key or "",
            RED_ARTIFACT_TYPE,
            red_artifact_title(version, created),
            render_red_artifact(
                red_id, version, created, validation_status or "pending", red_json
            ),
            progress_label=f"Saving RED artifact for {ticket.reference}…",
            cancel_token=self._cancel_token,
            on_progress=self._on_progress,
        )


class RedIdempotencyGuard:
    """Finds an existing RED for a (ticket, repo) pair so it can be reused.

    The tracker has no insert-or-return-existing endpoint, so two turns that
    list concurrently can both see an empty list and both insert. The list
    step is fatal: an unreadable list never falls through to an insert.
    """

    def __init__(
        self,
        client: HalApiClient,
        runner: StepRunner,
        mirror: RedArtifactMirror,
        *,
        created_by: str,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._client = client
        self._runner = runner
        self._mirror = mirror
        self._created_by = created_by
        self._cancel_token = cancel_token
        self._on_progress = on_progress

    async def resolve_or_none(self, ticket: TicketRef) -> Optional[RedVersionSummary]:
        listing: RedListResponse = await self._runner.fatal(
            "list_reds",
            lambda: self._client.list_reds(
                ticket.primary_key or "",
                ticket.repo_full_name or "",
                progress_label=f"Checking existing REDs for {ticket.reference}…",
                cancel_token=self._cancel_token,
                on_progress=self._on_progress,
            ),
        )
        if not listing.red_versions:
            return None

        # API order is authoritative; the first entry is the latest.
        latest = listing.red_versions[0]
        log_event(
            logger,
            logging.INFO,
            "red.reuse_existing",
            ticket=ticket.reference,
            red_id=latest.red_id,
            version=latest.version,
        )
        await self._runner.best_effort(
            "validate_existing_red",
            lambda: self._client.validate_red(
                latest.red_id,
                created_by=self._created_by,
                notes=EXISTING_RED_NOTES,
                progress_label=f"Validating existing RED for {ticket.reference}…",
                cancel_token=self._cancel_token,
                on_progress=self._on_progress,
            ),
        )
        await self._runner.best_effort(
            "mirror_existing_red", lambda: self._mirror.mirror_existing(ticket, latest)
        )
        return latest


__all__ = ["EXISTING_RED_NOTES", "RedArtifactMirror", "RedIdempotencyGuard"]
