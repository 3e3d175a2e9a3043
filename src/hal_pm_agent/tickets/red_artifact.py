import json
from typing import Any

from ..core.time_utils import iso_date_part

RED_ARTIFACT_TYPE = "red"


def red_artifact_title(version: int, created_at: str) -> str:
    return f"RED v{version} — {iso_date_part(created_at)}"


def render_red_artifact(
    red_id: str,
    version: int,
    created_at: str,
    validation_status: str,
    red_json: Any,
) -> str:
    canonical = json.dumps(red_json, indent=2, ensure_ascii=False)
    return (
        f"# RED Document Version {version}\n"
        "\n"
        f"RED ID: {red_id}\n"
        f"Created: {created_at}\n"
        f"Validation Status: {validation_status}\n"
        "\n"
        "## Canonical RED JSON\n"
        "\n"
        "```json\n"
        f"{canonical}\n"
        "```\n"
    )


__all__ = ["RED_ARTIFACT_TYPE", "red_artifact_title", "render_red_artifact"]
