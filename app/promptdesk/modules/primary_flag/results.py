from __future__ import annotations

import enum
from dataclasses import dataclass


class FlagError(str, enum.Enum):
    OWNERSHIP_VIOLATION = "ownership_violation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class FlagResult:
    """
    Outcome of a write on an owner's entity set.

    Business failures come back here instead of being raised; `error` is None on success.
    """

    entity_id: int | None
    is_primary: bool
    error: FlagError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, entity_id: int, is_primary: bool) -> "FlagResult":
        return cls(entity_id=entity_id, is_primary=is_primary)

    @classmethod
    def failure(cls, error: FlagError, entity_id: int | None = None) -> "FlagResult":
        return cls(entity_id=entity_id, is_primary=False, error=error)
