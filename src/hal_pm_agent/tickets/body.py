"""Ticket body text helpers: placeholder scan and heading/title normalization."""

import re

from ..core.exceptions import TicketValidationError

# `{{TODO}}` template markers and angle-bracket markers such as `<AC 1>`.
PLACEHOLDER_RE = re.compile(r"\{\{[^{}\n]*\}\}|<[A-Za-z0-9\s\-_]+>")

CANONICAL_HEADINGS = {
    "goal": "## Goal (one sentence)",
    "human-verifiable deliverable": "## Human-verifiable deliverable (UI-only)",
    "acceptance criteria": "## Acceptance criteria (UI-only)",
    "constraints": "## Constraints",
    "non-goals": "## Non-goals",
}

_SHORT_HEADING_RE = re.compile(
    r"^#{1,2}[ \t]+(Goal|Human-verifiable deliverable|Acceptance criteria|Constraints|Non-goals)[ \t]*$",
    re.MULTILINE | re.IGNORECASE,
)
_TITLE_LINE_RE = re.compile(r"(- \*\*Title\*\*:\s*)(.+?)(?:\n|$)")
_TITLE_ID_PREFIX_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9]*-)?\d{4}\s*[—–-]\s*")


def find_placeholders(text: str) -> list[str]:
    """Unique placeholder tokens in first-seen order."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(text or ""):
        seen.setdefault(match.group(0), None)
    return list(seen)


def ensure_no_placeholders(body_md: str, *, action: str) -> None:
    """Raise `TicketValidationError` when the body still carries template tokens.

    `action` names the rejected operation, e.g. "Ticket creation".
    """
    placeholders = find_placeholders(body_md)
    if placeholders:
        raise TicketValidationError(
            f"{action} rejected: unresolved template placeholder tokens detected. "
            f"Detected placeholders: {', '.join(placeholders)}.",
            detected_placeholders=placeholders,
        )


def normalize_body_for_ready(body_md: str) -> str:
    def _canonical(match: "re.Match[str]") -> str:
        return CANONICAL_HEADINGS[match.group(1).lower()]

    return _SHORT_HEADING_RE.sub(_canonical, body_md.strip())


def section_content(body_md: str, section_title: str) -> str:
    pattern = re.compile(
        r"##\s+" + re.escape(section_title) + r"\s*\n([\s\S]*?)(?=\n## |\Z)",
        re.IGNORECASE,
    )
    match = pattern.search(body_md)
    return match.group(1).strip() if match else ""


def normalize_title_line(body_md: str, ticket_id: str) -> str:
    """Rewrite the `- **Title**:` line as `<ticket_id> — <title>`."""
    if not body_md or not ticket_id:
        return body_md
    match = _TITLE_LINE_RE.search(body_md)
    if not match:
        return body_md
    title = _TITLE_ID_PREFIX_RE.sub("", match.group(2).strip())
    line = f"{match.group(1)}{ticket_id} — {title}"
    if match.group(0).endswith("\n"):
        line += "\n"
    return body_md[: match.start()] + line + body_md[match.end() :]


__all__ = [
    "CANONICAL_HEADINGS",
    "PLACEHOLDER_RE",
    "ensure_no_placeholders",
    "find_placeholders",
    "normalize_body_for_ready",
    "normalize_title_line",
    "section_content",
]
