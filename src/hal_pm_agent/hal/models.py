"""Pydantic decoders for HAL API responses, one model per endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.coercion import coerce_count, coerce_version
from .transport import TransportResult


def _clean_str(value: object) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool = False
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def _normalize_error(cls, value: object) -> object:
        return _clean_str(value)


class TicketRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    pk: Optional[str] = None
    display_id: Optional[str] = None
    ticket_number: Optional[int] = None
    repo_full_name: Optional[str] = None
    title: str = ""
    body_md: Optional[str] = None
    kanban_column_id: Optional[str] = None

    @field_validator(
        "id", "pk", "display_id", "repo_full_name", "kanban_column_id", mode="before"
    )
    @classmethod
    def _normalize_text(cls, value: object) -> object:
        return _clean_str(value)

    @field_validator("ticket_number", mode="before")
    @classmethod
    def _normalize_number(cls, value: object) -> object:
        return coerce_count(value)

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: object) -> object:
        return value if isinstance(value, str) else ""

    @field_validator("body_md", mode="before")
    @classmethod
    def _normalize_body(cls, value: object) -> object:
        return value if isinstance(value, str) else None


class TicketGetResponse(_Envelope):
    ticket: TicketRecord
    body_md: Optional[str] = None
    artifacts: list[dict[str, Any]] = Field(default_factory=list)
    artifacts_error: Optional[str] = None

    @field_validator("body_md", mode="before")
    @classmethod
    def _normalize_body(cls, value: object) -> object:
        return value if isinstance(value, str) else None

    @field_validator("artifacts", mode="before")
    @classmethod
    def _normalize_artifacts(cls, value: object) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("artifacts_error", mode="before")
    @classmethod
    def _normalize_artifacts_error(cls, value: object) -> object:
        if value in (None, "", False):
            return None
        return str(value)


class TicketCreateResponse(_Envelope):
    ticket_id: str = Field(alias="ticketId")
    pk: Optional[str] = None

    @field_validator("ticket_id", mode="before")
    @classmethod
    def _require_ticket_id(cls, value: object) -> object:
        normalized = _clean_str(value)
        if normalized is None:
            raise ValueError("missing ticketId")
        return normalized

    @field_validator("pk", mode="before")
    @classmethod
    def _normalize_pk(cls, value: object) -> object:
        return _clean_str(value)


class ActionResponse(_Envelope):
    pass


class TicketMoveResponse(_Envelope):
    position: Optional[Union[int, str]] = None
    moved_at: Optional[str] = Field(default=None, alias="movedAt")
    column_id: Optional[str] = Field(default=None, alias="columnId")
    column_name: Optional[str] = Field(default=None, alias="columnName")


class RedVersionSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    red_id: str
    version: int = 0
    created_at: Optional[str] = None
    validation_status: Optional[str] = None

    @field_validator("red_id", mode="before")
    @classmethod
    def _require_red_id(cls, value: object) -> object:
        normalized = _clean_str(value)
        if normalized is None:
            raise ValueError("missing red_id")
        return normalized

    @field_validator("version", mode="before")
    @classmethod
    def _normalize_version(cls, value: object) -> int:
        return coerce_version(value)

    @field_validator("created_at", "validation_status", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> object:
        return value if isinstance(value, str) and value.strip() else None


class RedDocumentRecord(RedVersionSummary):
    red_json: Any = None
    ticket_pk: Optional[str] = None
    repo_full_name: Optional[str] = None

    @field_validator("ticket_pk", "repo_full_name", mode="before")
    @classmethod
    def _normalize_keys(cls, value: object) -> object:
        return _clean_str(value)


class RedListResponse(_Envelope):
    red_versions: list[RedVersionSummary] = Field(default_factory=list)

    @field_validator("red_versions", mode="before")
    @classmethod
    def _normalize_versions(cls, value: object) -> object:
        return value if isinstance(value, list) else []


class RedGetResponse(_Envelope):
    red_document: RedDocumentRecord


class RedInsertResponse(_Envelope):
    red_document: RedDocumentRecord


ModelT = TypeVar("ModelT", bound=_Envelope)


@dataclass(frozen=True)
class ApiOk(Generic[ModelT]):
    data: ModelT
    http_ok: bool = True

    ok = True


@dataclass(frozen=True)
class ApiRejected:
    error: str
    payload: Any = None
    http_ok: bool = False

    ok = False


def decode(
    model: Type[ModelT], result: TransportResult, fallback_error: str
) -> Union[ApiOk[ModelT], ApiRejected]:
    """Validate one response against `model`.

    Anything other than an object carrying `success: true` that satisfies the
    model becomes `ApiRejected`, preferring the server's own `error` text.
    """
    payload = result.payload
    if not isinstance(payload, dict):
        return ApiRejected(fallback_error, payload, result.http_ok)
    server_error = _clean_str(payload.get("error"))
    if payload.get("success") is not True:
        return ApiRejected(server_error or fallback_error, payload, result.http_ok)
    try:
        data = model.model_validate(payload)
    except ValidationError:
        return ApiRejected(server_error or fallback_error, payload, result.http_ok)
    return ApiOk(data, result.http_ok)


__all__ = [
    "ActionResponse",
    "ApiOk",
    "ApiRejected",
    "RedDocumentRecord",
    "RedGetResponse",
    "RedInsertResponse",
    "RedListResponse",
    "RedVersionSummary",
    "TicketCreateResponse",
    "TicketGetResponse",
    "TicketMoveResponse",
    "TicketRecord",
    "decode",
]
