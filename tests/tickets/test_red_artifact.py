from __future__ import annotations

from hal_pm_agent.tickets.red_artifact import red_artifact_title, render_red_artifact


def test_title_uses_date_part_of_timestamp() -> None:
    assert red_artifact_title(3, "2026-01-05T10:00:00.000Z") == "RED v3 — 2026-01-05"


def test_rendered_body_embeds_pretty_json() -> None:
    body = render_red_artifact(
        "red-1",
        2,
        "2026-01-05T10:00:00.000Z",
        "valid",
        {"requirements": ["Toggle"], "note": "café"},
    )

    assert body.startswith("# RED Document Version 2\n\nRED ID: red-1\n")
    assert "Created: 2026-01-05T10:00:00.000Z\n" in body
    assert "Validation Status: valid\n" in body
    assert '```json\n{\n  "requirements": [\n    "Toggle"\n  ],\n  "note": "café"\n}\n```\n' in body
