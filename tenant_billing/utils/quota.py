"""
Tier quotas as a tagged value.

Tiers store quotas as integers where -1 means unlimited. Converting to
Quota at the edge keeps the sentinel out of any arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass

UNLIMITED = -1


@dataclass(frozen=True)
class Unlimited:
    def allows(self, current: int, additional: int = 1) -> bool:
        return True

    def remaining(self, current: int) -> int | None:
        return None

    def is_reached(self, current: int) -> bool:
        return False

    def as_limit(self) -> int:
        return UNLIMITED


@dataclass(frozen=True)
class Bounded:
    limit: int

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError(f"Bounded quota must be non-negative, got {self.limit}")

    def allows(self, current: int, additional: int = 1) -> bool:
        return current + additional <= self.limit

    def remaining(self, current: int) -> int | None:
        return max(0, self.limit - current)

    def is_reached(self, current: int) -> bool:
        return current >= self.limit

    def as_limit(self) -> int:
        return self.limit


Quota = Unlimited | Bounded


def quota_from_limit(limit: int | None) -> Quota:
    """Convert a stored column value into a Quota. None and -1 are unlimited."""
    if limit is None or limit == UNLIMITED:
        return Unlimited()
    if limit < 0:
        raise ValueError(f"Invalid quota value {limit}; use -1 for unlimited")
    return Bounded(limit)
