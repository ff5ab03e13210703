"""
Pure date arithmetic for billing periods.

All timestamps are naive UTC. Periods are whole days; nothing here rounds
except days_remaining, which counts partial days as a full day.
"""

import math
from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Current time as naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_days(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def trial_end(start: datetime, trial_days: int) -> datetime:
    return add_days(start, trial_days)


def billing_period(start: datetime, plan_days: int) -> tuple[datetime, datetime]:
    return start, add_days(start, plan_days)


def grace_deadline(overdue_since: datetime, grace_days: int) -> datetime:
    return add_days(overdue_since, grace_days)


def days_remaining(end: datetime | None, now: datetime) -> int:
    """Whole days left until `end`, rounded up, never negative."""
    if end is None:
        return 0
    seconds = (end - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)


def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
