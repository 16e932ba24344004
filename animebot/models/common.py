from __future__ import annotations

from datetime import datetime, timezone


def now_iso_utc() -> str:
    """Current UTC timestamp as ISO8601 (seconds resolution)."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def normalize_title(title: str | None) -> str:
    """Grouping/dedup key for a title: trimmed and lower-cased, nothing else."""
    return (title or "").strip().lower()


def format_progress(value: float | int | None) -> str:
    """Render an episode/chapter number without a trailing `.0`."""
    if value is None:
        return "0"
    num = float(value)
    if num.is_integer():
        return str(int(num))
    return f"{num}".rstrip("0").rstrip(".")


__all__ = ["format_progress", "normalize_title", "now_iso_utc"]
