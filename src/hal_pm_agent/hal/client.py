from __future__ import annotations

import logging
from typing import Any, Optional, Type, Union

from ..core.cancellation import CancellationToken
from ..core.config import DEFAULT_READ_TIMEOUT_MS, DEFAULT_WRITE_TIMEOUT_MS, RetryConfig
from ..core.retry import retry_connection_errors
from .models import (
    ActionResponse,
    ApiOk,
    ApiRejected,
    ModelT,
    RedGetResponse,
    RedInsertResponse,
    RedListResponse,
    TicketCreateResponse,
    TicketGetResponse,
    TicketMoveResponse,
    decode,
)
from .transport import HalTransport, ProgressCallback, RequestEnvelope

logger = logging.getLogger(__name__)

PATH_TICKETS_GET = "/api/tickets/get"
PATH_TICKETS_CREATE = "/api/tickets/create-general"
PATH_TICKETS_UPDATE = "/api/tickets/update"
PATH_TICKETS_MOVE = "/api/tickets/move"
PATH_RED_LIST = "/api/red/list"
PATH_RED_GET = "/api/red/get"
PATH_RED_INSERT = "/api/red/insert"
PATH_RED_VALIDATE = "/api/red/validate"
PATH_ARTIFACTS_INSERT = "/api/artifacts/insert-implementation"


class HalApiClient:
    """Typed access to the HAL tracker endpoints.

    Every coroutine returns `ApiOk` with the decoded model or `ApiRejected`
    with a human-readable error. Transport failures and cancellation raise.
    Reads retry on connection errors; writes are sent exactly once.
    """

    def __init__(
        self,
        transport: HalTransport,
        *,
        read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
        write_timeout_ms: int = DEFAULT_WRITE_TIMEOUT_MS,
        retry: Optional[RetryConfig] = None,
    ) -> None:
        self._transport = transport
        self._read_timeout_ms = read_timeout_ms
        self._write_timeout_ms = write_timeout_ms
        self._retry = retry or RetryConfig()

    @property
    def transport(self) -> HalTransport:
        return self._transport

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "HalApiClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def _call(
        self,
        path: str,
        body: dict[str, Any],
        model: Type[ModelT],
        *,
        fallback_error: str,
        write: bool,
        progress_label: Optional[str],
        cancel_token: Optional[CancellationToken],
        on_progress: Optional[ProgressCallback],
        retry_reads: bool = False,
    ) -> Union[ApiOk[ModelT], ApiRejected]:
        envelope = RequestEnvelope(
            path=path,
            body=body,
            timeout_ms=self._write_timeout_ms if write else self._read_timeout_ms,
            progress_label=progress_label,
        )

        async def _send() -> Any:
            return await self._transport.send(
                envelope, cancel_token, on_progress=on_progress
            )

        if retry_reads:
            result = await retry_connection_errors(_send, self._retry)
        else:
            result = await _send()
        return decode(model, result, fallback_error)

    async def get_ticket(
        self,
        ticket_ref: str,
        *,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[TicketGetResponse], ApiRejected]:
        return await self._call(
            PATH_TICKETS_GET,
            {"ticketId": ticket_ref},
            TicketGetResponse,
            fallback_error=f"Ticket {ticket_ref} not found.",
            write=False,
            progress_label=progress_label or f"Fetching ticket {ticket_ref}…",
            cancel_token=cancel_token,
            on_progress=on_progress,
            retry_reads=True,
        )

    async def create_ticket(
        self,
        title: str,
        body_md: str,
        repo_full_name: str,
        column_id: str,
        *,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[TicketCreateResponse], ApiRejected]:
        return await self._call(
            PATH_TICKETS_CREATE,
            {
                "title": title,
                "body_md": body_md,
                "repo_full_name": repo_full_name,
                "kanban_column_id": column_id,
            },
            TicketCreateResponse,
            fallback_error="Failed to create ticket",
            write=True,
            progress_label=progress_label or f"Creating ticket: {title}",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def update_ticket_body(
        self,
        ticket_id: str,
        body_md: str,
        *,
        ticket_pk: Optional[str] = None,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[ActionResponse], ApiRejected]:
        body: dict[str, Any] = (
            {"ticketPk": ticket_pk} if ticket_pk else {"ticketId": ticket_id}
        )
        body["body_md"] = body_md
        return await self._call(
            PATH_TICKETS_UPDATE,
            body,
            ActionResponse,
            fallback_error="Failed to update ticket",
            write=False,
            progress_label=progress_label or f"Updating ticket body for {ticket_id}…",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def move_ticket(
        self,
        ticket_id: str,
        *,
        column_id: Optional[str] = None,
        column_name: Optional[str] = None,
        position: Optional[Union[str, int]] = None,
        fallback_error: str = "Failed to move ticket",
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[TicketMoveResponse], ApiRejected]:
        body: dict[str, Any] = {"ticketId": ticket_id}
        if column_id:
            body["columnId"] = column_id
        if column_name:
            body["columnName"] = column_name
        if position is not None:
            body["position"] = position
        target = column_id or column_name or "column"
        return await self._call(
            PATH_TICKETS_MOVE,
            body,
            TicketMoveResponse,
            fallback_error=fallback_error,
            write=True,
            progress_label=progress_label or f"Moving {ticket_id} to {target}…",
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def list_reds(
        self,
        ticket_pk: str,
        repo_full_name: str,
        *,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[RedListResponse], ApiRejected]:
        return await self._call(
            PATH_RED_LIST,
            {"ticketPk": ticket_pk, "repoFullName": repo_full_name},
            RedListResponse,
            fallback_error="Failed to list RED versions",
            write=False,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
            retry_reads=True,
        )

    async def get_red(
        self,
        ticket_pk: str,
        ticket_id: str,
        repo_full_name: str,
        version: int,
        *,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[RedGetResponse], ApiRejected]:
        return await self._call(
            PATH_RED_GET,
            {
                "ticketPk": ticket_pk,
                "ticketId": ticket_id,
                "repoFullName": repo_full_name,
                "version": version,
            },
            RedGetResponse,
            fallback_error=f"RED version {version} not found",
            write=False,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
            retry_reads=True,
        )

    async def insert_red(
        self,
        ticket_pk: str,
        repo_full_name: str,
        red_json: Any,
        *,
        created_by: str,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[RedInsertResponse], ApiRejected]:
        return await self._call(
            PATH_RED_INSERT,
            {
                "ticketPk": ticket_pk,
                "repoFullName": repo_full_name,
                "redJson": red_json,
                "validationStatus": "pending",
                "createdBy": created_by,
            },
            RedInsertResponse,
            fallback_error="Failed to create RED document",
            write=True,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def validate_red(
        self,
        red_id: str,
        *,
        created_by: str,
        notes: str,
        result: str = "valid",
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[ActionResponse], ApiRejected]:
        return await self._call(
            PATH_RED_VALIDATE,
            {
                "redId": red_id,
                "result": result,
                "createdBy": created_by,
                "notes": notes,
            },
            ActionResponse,
            fallback_error="Failed to validate RED document",
            write=False,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )

    async def insert_artifact(
        self,
        ticket_pk: str,
        artifact_type: str,
        title: str,
        body_md: str,
        *,
        progress_label: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ApiOk[ActionResponse], ApiRejected]:
        return await self._call(
            PATH_ARTIFACTS_INSERT,
            {
                "ticketId": ticket_pk,
                "artifactType": artifact_type,
                "title": title,
                "body_md": body_md,
            },
            ActionResponse,
            fallback_error="Failed to save artifact",
            write=True,
            progress_label=progress_label,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )


__all__ = [
    "HalApiClient",
    "PATH_ARTIFACTS_INSERT",
    "PATH_RED_GET",
    "PATH_RED_INSERT",
    "PATH_RED_LIST",
    "PATH_RED_VALIDATE",
    "PATH_TICKETS_CREATE",
    "PATH_TICKETS_GET",
    "PATH_TICKETS_MOVE",
    "PATH_TICKETS_UPDATE",
]
