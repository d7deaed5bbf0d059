from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are timezone=False)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_str(value: object) -> str | None:
    """Strip a payload value; empty strings become None."""
    if value is None:
        return None
    return str(value).strip() or None


def parse_bool(value: object) -> bool:
    """Interpret JSON/form style truthy values ("1", "true", "on", True)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def length_errors(values: dict[str, object], limits: dict[str, tuple[str, int]]) -> list[str]:
    """Messages for every `values[field]` longer than its column allows; limits map field -> (label, max)."""
    errors = []
    for field, (label, max_len) in limits.items():
        value = clean_str(values.get(field))
        if value and len(value) > max_len:
            errors.append(f"{label} must be {max_len} characters or fewer.")
    return errors
