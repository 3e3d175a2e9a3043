from datetime import datetime, timezone


def now_iso_utc_z() -> str:
    return (
        datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


def iso_date_part(value: str) -> str:
    return value.split("T", 1)[0]


__all__ = ["iso_date_part", "now_iso_utc_z"]
