from __future__ import annotations

import dataclasses
import re
from typing import Any, Callable

from .body import find_placeholders, section_content

_CHECKBOX_RE = re.compile(r"-\s*\[\s*\]")
_WHOLE_PLACEHOLDER_RE = re.compile(r"^<[^>]*>$")


@dataclasses.dataclass(frozen=True)
class ReadyCheckResult:
    ready: bool
    missing_items: tuple[str, ...] = ()
    checklist: dict[str, bool] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "missingItems": list(self.missing_items),
            "checklist": dict(self.checklist),
        }


ReadinessEvaluator = Callable[[str], ReadyCheckResult]


def evaluate_ticket_ready(body_md: str) -> ReadyCheckResult:
    """Definition-of-Ready check over the canonical `##` sections of a body.

    Requires a placeholder-free goal and deliverable, at least one `- [ ]`
    acceptance checkbox, non-empty constraints and non-goals, and no
    placeholder tokens anywhere in the body.
    """
    body = (body_md or "").strip()
    goal = section_content(body, "Goal (one sentence)")
    deliverable = section_content(body, "Human-verifiable deliverable (UI-only)")
    acceptance = section_content(body, "Acceptance criteria (UI-only)")
    constraints = section_content(body, "Constraints")
    non_goals = section_content(body, "Non-goals")

    goal_ok = (
        bool(goal)
        and not find_placeholders(goal)
        and not _WHOLE_PLACEHOLDER_RE.match(goal)
    )
    deliverable_ok = bool(deliverable) and not find_placeholders(deliverable)
    acceptance_ok = bool(_CHECKBOX_RE.search(acceptance))
    constraints_ok = bool(constraints)
    non_goals_ok = bool(non_goals)
    placeholders = find_placeholders(body)
    no_placeholders_ok = not placeholders

    missing: list[str] = []
    if not goal_ok:
        missing.append("Goal (one sentence) missing or placeholder")
    if not deliverable_ok:
        missing.append("Human-verifiable deliverable missing or placeholder")
    if not acceptance_ok:
        missing.append("Acceptance criteria checkboxes missing")
    if not constraints_ok:
        missing.append("Constraints section missing or empty")
    if not non_goals_ok:
        missing.append("Non-goals section missing or empty")
    if not no_placeholders_ok:
        missing.append(f"Unresolved placeholders: {', '.join(placeholders)}")

    return ReadyCheckResult(
        ready=not missing,
        missing_items=tuple(missing),
        checklist={
            "goal": goal_ok,
            "deliverable": deliverable_ok,
            "acceptance_criteria": acceptance_ok,
            "constraints_non_goals": constraints_ok and non_goals_ok,
            "no_placeholders": no_placeholders_ok,
        },
    )


__all__ = ["ReadinessEvaluator", "ReadyCheckResult", "evaluate_ticket_ready"]
