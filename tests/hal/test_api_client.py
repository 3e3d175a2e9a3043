from __future__ import annotations

import httpx
import pytest

from hal_pm_agent.core.exceptions import HalConnectionError
from hal_pm_agent.hal.client import (
    PATH_ARTIFACTS_INSERT,
    PATH_RED_INSERT,
    PATH_RED_LIST,
    PATH_TICKETS_CREATE,
    PATH_TICKETS_GET,
    PATH_TICKETS_UPDATE,
)
from hal_pm_agent.hal.models import ApiOk, ApiRejected, TicketCreateResponse, decode
from hal_pm_agent.hal.transport import TransportResult
from tests.fakes import FakeHal


def _result(payload: object, http_ok: bool = True) -> TransportResult:
    return TransportResult(http_ok=http_ok, payload=payload, status_code=200 if http_ok else 500)


def test_decode_accepts_success_with_required_fields() -> None:
    outcome = decode(
        TicketCreateResponse,
        _result({"success": True, "ticketId": " HAL-0007 ", "pk": 42}),
        "Failed to create ticket",
    )

    assert isinstance(outcome, ApiOk)
    assert outcome.ok is True
    assert outcome.data.ticket_id == "HAL-0007"
    assert outcome.data.pk == "42"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"success": False, "error": "Repo not connected"}, "Repo not connected"),
        ({"success": False}, "Failed to create ticket"),
        ({"success": "true", "ticketId": "HAL-0001"}, "Failed to create ticket"),
        ({"success": True}, "Failed to create ticket"),
        ({"success": True, "ticketId": "   "}, "Failed to create ticket"),
        (["not", "an", "object"], "Failed to create ticket"),
        ({}, "Failed to create ticket"),
    ],
)
def test_decode_rejections_fall_back_to_operation_message(
    payload: object, expected: str
) -> None:
    outcome = decode(TicketCreateResponse, _result(payload), "Failed to create ticket")

    assert isinstance(outcome, ApiRejected)
    assert outcome.ok is False
    assert outcome.error == expected


def test_decode_keeps_server_error_even_on_http_success() -> None:
    outcome = decode(
        TicketCreateResponse,
        _result({"success": False, "error": "Duplicate title"}, http_ok=True),
        "Failed to create ticket",
    )

    assert isinstance(outcome, ApiRejected)
    assert outcome.http_ok is True
    assert outcome.error == "Duplicate title"


@pytest.mark.anyio
async def test_non_json_failure_surfaces_diagnostic_text(fake_hal: FakeHal) -> None:
    fake_hal.override(
        PATH_TICKETS_CREATE,
        httpx.Response(502, text="<html>Bad gateway</html>", headers={"content-type": "text/html"}),
    )
    async with fake_hal.api_client() as client:
        outcome = await client.create_ticket("Title", "body", "acme/repo", "col-unassigned")

    assert isinstance(outcome, ApiRejected)
    assert outcome.error.startswith("Non-JSON response from /api/tickets/create-general (HTTP 502")


@pytest.mark.anyio
async def test_get_ticket_decodes_ticket_and_artifacts(fake_hal: FakeHal) -> None:
    fake_hal.add_ticket(12, title="Dark mode")

    async with fake_hal.api_client() as client:
        outcome = await client.get_ticket("HAL-0012")

    assert isinstance(outcome, ApiOk)
    ticket = outcome.data.ticket
    assert ticket.display_id == "HAL-0012"
    assert ticket.pk == "pk-12"
    assert ticket.ticket_number == 12
    assert ticket.title == "Dark mode"
    assert outcome.data.artifacts == []


@pytest.mark.anyio
async def test_missing_ticket_uses_server_error(fake_hal: FakeHal) -> None:
    async with fake_hal.api_client() as client:
        outcome = await client.get_ticket("HAL-0999")

    assert isinstance(outcome, ApiRejected)
    assert outcome.error == "Ticket HAL-0999 not found in HAL"


@pytest.mark.anyio
async def test_reads_retry_connection_errors(fake_hal: FakeHal) -> None:
    fake_hal.add_ticket(3)
    fake_hal.override(
        PATH_TICKETS_GET,
        httpx.ConnectError("connection reset"),
        httpx.ConnectError("connection reset"),
    )

    async with fake_hal.api_client() as client:
        outcome = await client.get_ticket("3")

    assert isinstance(outcome, ApiOk)
    assert fake_hal.count(PATH_TICKETS_GET) == 3


@pytest.mark.anyio
async def test_read_retries_are_bounded(fake_hal: FakeHal) -> None:
    fake_hal.override(PATH_RED_LIST, *[httpx.ConnectError("down") for _ in range(5)])

    async with fake_hal.api_client() as client:
        with pytest.raises(HalConnectionError):
            await client.list_reds("pk-1", "acme/repo")

    assert fake_hal.count(PATH_RED_LIST) == 3


@pytest.mark.anyio
async def test_writes_are_sent_once(fake_hal: FakeHal) -> None:
    fake_hal.add_ticket(1)
    fake_hal.override(PATH_RED_INSERT, httpx.ConnectError("connection reset"))

    async with fake_hal.api_client() as client:
        with pytest.raises(HalConnectionError):
            await client.insert_red("pk-1", "acme/repo", {"a": 1}, created_by="pm-agent")

    assert fake_hal.count(PATH_RED_INSERT) == 1


@pytest.mark.anyio
async def test_update_prefers_primary_key(fake_hal: FakeHal) -> None:
    fake_hal.add_ticket(4)

    async with fake_hal.api_client() as client:
        await client.update_ticket_body("HAL-0004", "new body", ticket_pk="pk-4")
        await client.update_ticket_body("HAL-0004", "newer body")

    assert fake_hal.bodies(PATH_TICKETS_UPDATE) == [
        {"ticketPk": "pk-4", "body_md": "new body"},
        {"ticketId": "HAL-0004", "body_md": "newer body"},
    ]


@pytest.mark.anyio
async def test_insert_red_sends_pending_status_and_author(fake_hal: FakeHal) -> None:
    async with fake_hal.api_client() as client:
        outcome = await client.insert_red(
            "pk-9", "acme/repo", {"requirements": []}, created_by="pm-agent"
        )

    assert isinstance(outcome, ApiOk)
    assert outcome.data.red_document.red_id == "red-1"
    assert outcome.data.red_document.version == 1
    assert fake_hal.bodies(PATH_RED_INSERT) == [
        {
            "ticketPk": "pk-9",
            "repoFullName": "acme/repo",
            "redJson": {"requirements": []},
            "validationStatus": "pending",
            "createdBy": "pm-agent",
        }
    ]


@pytest.mark.anyio
async def test_artifact_insert_targets_ticket_primary_key(fake_hal: FakeHal) -> None:
    async with fake_hal.api_client() as client:
        outcome = await client.insert_artifact("pk-5", "red", "RED v1 — 2026-01-05", "# RED")

    assert isinstance(outcome, ApiOk)
    assert fake_hal.bodies(PATH_ARTIFACTS_INSERT)[0]["ticketId"] == "pk-5"


@pytest.mark.anyio
async def test_read_progress_label_defaults_to_ticket_reference(fake_hal: FakeHal) -> None:
    fake_hal.add_ticket(8)
    seen: list[str] = []

    async with fake_hal.api_client() as client:
        await client.get_ticket("HAL-0008", on_progress=seen.append)

    assert seen == ["Fetching ticket HAL-0008…"]
