import re
from typing import Optional

_LAST_NUMBER_RE = re.compile(r"(\d{1,4})(?!.*\d)")
_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_INVALID_RE = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-+")


def parse_ticket_number(ref: object) -> Optional[int]:
    """Return the last run of up to four digits in a ticket reference.

    `"HAL-0012"`, `"0012"` and `"12"` all parse to 12.
    """
    text = str(ref if ref is not None else "").strip()
    if not text:
        return None
    match = _LAST_NUMBER_RE.search(text)
    if not match:
        return None
    return int(match.group(1))


def short_id(ticket_number: Optional[int]) -> str:
    return str(ticket_number or 0).zfill(4)


def slug_from_title(title: str) -> str:
    slug = _WHITESPACE_RE.sub("-", title.strip().lower())
    slug = _SLUG_INVALID_RE.sub("", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug).strip("-")
    return slug or "ticket"


def ticket_filename(ticket_ref: str, title: str) -> str:
    return f"{short_id(parse_ticket_number(ticket_ref))}-{slug_from_title(title)}.md"


__all__ = ["parse_ticket_number", "short_id", "slug_from_title", "ticket_filename"]
