from __future__ import annotations

import pytest

from hal_pm_agent.tickets.ids import (
    parse_ticket_number,
    short_id,
    slug_from_title,
    ticket_filename,
)


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("HAL-0012", 12),
        ("0012", 12),
        ("12", 12),
        (" 7 ", 7),
        (48, 48),
        ("ticket", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_ticket_number(ref: object, expected: object) -> None:
    assert parse_ticket_number(ref) == expected


def test_short_id_pads_to_four_digits() -> None:
    assert short_id(12) == "0012"
    assert short_id(None) == "0000"


def test_slug_strips_punctuation_and_collapses_hyphens() -> None:
    assert slug_from_title("  Add Dark-Mode -- Toggle!  ") == "add-dark-mode-toggle"
    assert slug_from_title("???") == "ticket"


def test_ticket_filename_combines_number_and_slug() -> None:
    assert ticket_filename("HAL-0012", "Add dark mode toggle") == "0012-add-dark-mode-toggle.md"
