from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterator

from ..core.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallRecord:
    name: str
    input: Any
    output: Any

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "input": self.input, "output": self.output}


class CallLedger:
    """Append-only record of the tool calls made during one agent turn.

    Inputs and outputs are deep-copied on entry so later mutation by the
    caller cannot rewrite history.
    """

    def __init__(self) -> None:
        self._records: list[ToolCallRecord] = []

    def record(self, name: str, input: Any, output: Any) -> ToolCallRecord:
        entry = ToolCallRecord(name, copy.deepcopy(input), copy.deepcopy(output))
        self._records.append(entry)
        success = output.get("success") if isinstance(output, dict) else None
        log_event(
            logger,
            logging.INFO,
            "ledger.tool_call",
            tool=name,
            success=success,
            index=len(self._records) - 1,
        )
        return entry

    @property
    def records(self) -> tuple[ToolCallRecord, ...]:
        return tuple(self._records)

    def flush(self) -> list[ToolCallRecord]:
        records, self._records = self._records, []
        return records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ToolCallRecord]:
        return iter(tuple(self._records))


__all__ = ["CallLedger", "ToolCallRecord"]
