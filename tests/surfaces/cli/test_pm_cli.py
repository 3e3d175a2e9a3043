from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from hal_pm_agent.core.config import CONFIG_FILENAME
from hal_pm_agent.hal.client import PATH_RED_INSERT
from hal_pm_agent.surfaces.cli import cli
from hal_pm_agent.surfaces.cli.cli import app
from tests.fakes import NOT_READY_BODY, READY_BODY, FakeHal

runner = CliRunner()

pytestmark = pytest.mark.usefixtures("clean_env")


@pytest.fixture
def wired_hal(fake_hal: FakeHal, monkeypatch: pytest.MonkeyPatch) -> FakeHal:
    monkeypatch.setattr(cli, "_http_client_factory", fake_hal.http_client)
    return fake_hal


def _payload(result: Any) -> Any:
    lines = [line for line in result.output.splitlines() if line.startswith("{")]
    assert lines, result.output
    return json.loads(lines[-1])


def _invoke(root: Path, *args: str) -> Any:
    return runner.invoke(app, ["--root", str(root), *args])


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert result.output.startswith("hal-pm-agent ")


def test_create_ticket_prints_outcome(wired_hal: FakeHal, tmp_path: Path) -> None:
    body = tmp_path / "body.md"
    body.write_text(READY_BODY, encoding="utf-8")

    result = _invoke(
        tmp_path, "create-ticket", "--title", "Add dark mode toggle", "--body-file", str(body)
    )

    assert result.exit_code == 0, result.output
    payload = _payload(result)
    assert payload["display_id"] == "HAL-0001"
    assert payload["movedToTodo"] is True
    assert "Creating ticket: Add dark mode toggle" in result.output


def test_failure_payload_exits_nonzero(wired_hal: FakeHal, tmp_path: Path) -> None:
    body = tmp_path / "body.md"
    body.write_text("## Goal\n{{GOAL}}\n", encoding="utf-8")

    result = _invoke(tmp_path, "create-ticket", "--title", "T", "--body-file", str(body))

    assert result.exit_code == 1
    assert _payload(result)["detectedPlaceholders"] == ["{{GOAL}}"]
    assert wired_hal.requests == []


def test_create_red_reuses_on_second_run(wired_hal: FakeHal, tmp_path: Path) -> None:
    wired_hal.add_ticket(12)
    red = tmp_path / "red.json"
    red.write_text(json.dumps({"requirements": []}), encoding="utf-8")

    first = _invoke(tmp_path, "create-red", "--ticket", "HAL-0012", "--red-file", str(red))
    second = _invoke(tmp_path, "create-red", "--ticket", "12", "--red-file", str(red))

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert _payload(first) == _payload(second)
    assert wired_hal.count(PATH_RED_INSERT) == 1


def test_budget_exhaustion_exits_with_cancelled_code(
    wired_hal: FakeHal, tmp_path: Path
) -> None:
    wired_hal.add_ticket(12)
    wired_hal.hold(PATH_RED_INSERT)
    red = tmp_path / "red.json"
    red.write_text("{}", encoding="utf-8")

    result = _invoke(
        tmp_path,
        "--budget-seconds",
        "0.2",
        "create-red",
        "--ticket",
        "HAL-0012",
        "--red-file",
        str(red),
    )

    assert result.exit_code == 3
    payload = _payload(result)
    assert payload["cancelled"] is True
    assert payload["success"] is False
    assert wired_hal.reds == []


def test_fetch_ticket_pretty_prints(wired_hal: FakeHal, tmp_path: Path) -> None:
    wired_hal.add_ticket(4, title="Login bug")

    result = _invoke(tmp_path, "--pretty", "fetch-ticket", "--ticket", "4")

    assert result.exit_code == 0, result.output
    assert '  "title": "Login bug"' in result.output


def test_move_ticket_requires_a_column(wired_hal: FakeHal, tmp_path: Path) -> None:
    result = _invoke(tmp_path, "move-ticket", "--ticket", "HAL-0001")

    assert result.exit_code == 1
    assert "Provide --column-id or --column-name." in result.output
    assert wired_hal.requests == []


def test_move_ticket_sends_numeric_position(wired_hal: FakeHal, tmp_path: Path) -> None:
    wired_hal.add_ticket(1)

    result = _invoke(
        tmp_path, "move-ticket", "--ticket", "HAL-0001", "--column-id", "col-qa", "--position", "2"
    )

    assert result.exit_code == 0, result.output
    assert wired_hal.moves == [{"ticketId": "HAL-0001", "columnId": "col-qa", "position": 2}]


def test_update_ticket(wired_hal: FakeHal, tmp_path: Path) -> None:
    wired_hal.add_ticket(2)
    body = tmp_path / "body.md"
    body.write_text(READY_BODY, encoding="utf-8")

    result = _invoke(tmp_path, "update-ticket", "--ticket", "HAL-0002", "--body-file", str(body))

    assert result.exit_code == 0, result.output
    assert _payload(result) == {"success": True, "ticket_id": "HAL-0002", "ready": True}


@pytest.mark.parametrize("body, code", [(READY_BODY, 0), (NOT_READY_BODY, 1)])
def test_check_ready_is_local(
    wired_hal: FakeHal, tmp_path: Path, body: str, code: int
) -> None:
    path = tmp_path / "body.md"
    path.write_text(body, encoding="utf-8")

    result = _invoke(tmp_path, "check-ready", "--body-file", str(path))

    assert result.exit_code == code
    assert _payload(result)["ready"] is (code == 0)
    assert wired_hal.requests == []


def test_invalid_config_is_reported(wired_hal: FakeHal, tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("hal: [\n", encoding="utf-8")

    result = _invoke(tmp_path, "fetch-ticket", "--ticket", "1")

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_missing_body_file_is_reported(wired_hal: FakeHal, tmp_path: Path) -> None:
    result = _invoke(
        tmp_path, "create-ticket", "--title", "T", "--body-file", str(tmp_path / "nope.md")
    )

    assert result.exit_code == 1
    assert "Failed to read body file" in result.output


def test_move_to_todo_refuses_started_ticket(wired_hal: FakeHal, tmp_path: Path) -> None:
    wired_hal.add_ticket(6, column="col-doing")

    result = _invoke(tmp_path, "move-to-todo", "--ticket", "HAL-0006", "--position", "top")

    assert result.exit_code == 1
    assert "Ticket is not in Unassigned" in _payload(result)["error"]
    assert wired_hal.moves == []
