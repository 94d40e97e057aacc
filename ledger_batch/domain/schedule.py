"""
Pure cron evaluation for the ledger scheduler.

Contract:
    Every function here is PURE: no I/O, no clock reads.  The scheduler
    passes in the current time and the time a schedule last fired.

Firing rule:
    A schedule fires when ``as_of`` matches its cron spec and it has not
    already fired within the same minute.  Matching is done on naive local
    wall-clock time, the same time the injected clock reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta


# =============================================================================
# CronSpec (lightweight cron parser)
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression (minute hour day_of_month month day_of_week).

    Each field is a frozenset of valid integer values.
    Supports: *, values, lists (1,15), ranges (1-5), steps (*/5, 1-10/2).
    """

    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))


def _parse_int(value: str, field_str: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid cron field {field_str!r}: {value!r} is not a number") from None


def _check_bounds(value: int, min_val: int, max_val: int) -> int:
    if value < min_val or value > max_val:
        raise ValueError(f"Value {value} outside range [{min_val}, {max_val}]")
    return value


def _parse_cron_field(field_str: str, min_val: int, max_val: int) -> frozenset[int]:
    """Parse a single cron field into a frozenset of valid values.

    Raises:
        ValueError: If the field is syntactically invalid or values out of range.
    """
    values: set[int] = set()

    for part in field_str.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty element in cron field {field_str!r}")

        step = 1
        has_step = "/" in part
        if has_step:
            part, step_str = part.split("/", 1)
            step = _parse_int(step_str, field_str)
            if step <= 0:
                raise ValueError(f"Step must be positive: {step}")

        if part == "*":
            start, end = min_val, max_val
        elif "-" in part:
            s, e = part.split("-", 1)
            start = _check_bounds(_parse_int(s, field_str), min_val, max_val)
            end = _check_bounds(_parse_int(e, field_str), min_val, max_val)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
        else:
            start = _check_bounds(_parse_int(part, field_str), min_val, max_val)
            end = max_val if has_step else start

        values.update(range(start, end + 1, step))

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression into a CronSpec.

    Format: ``minute hour day_of_month month day_of_week``

    Raises:
        ValueError: If expression is malformed.
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(
            f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        )

    return CronSpec(
        minutes=_parse_cron_field(parts[0], 0, 59),
        hours=_parse_cron_field(parts[1], 0, 23),
        days_of_month=_parse_cron_field(parts[2], 1, 31),
        months=_parse_cron_field(parts[3], 1, 12),
        days_of_week=_parse_cron_field(parts[4], 0, 6),
    )


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """Check if a datetime matches a cron spec.

    Cron convention: 0=Sunday, 1=Monday, ..., 6=Saturday.
    Python datetime.weekday(): 0=Monday, ..., 6=Sunday.
    """
    cron_dow = (dt.weekday() + 1) % 7
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.day in spec.days_of_month
        and dt.month in spec.months
        and cron_dow in spec.days_of_week
    )


# =============================================================================
# Schedule evaluation (pure)
# =============================================================================


def _minute_of(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def should_fire(
    spec: CronSpec,
    as_of: datetime,
    last_fired_at: datetime | None = None,
) -> bool:
    """Whether a schedule is due at ``as_of``.

    Fires at most once per matching minute: a second evaluation inside the
    minute it already fired in returns False.
    """
    if not matches_cron(spec, as_of):
        return False
    if last_fired_at is not None and _minute_of(last_fired_at) >= _minute_of(as_of):
        return False
    return True


def compute_next_run(spec: CronSpec, after: datetime) -> datetime:
    """First minute strictly after ``after`` that matches ``spec``.

    Scans minute-by-minute up to 366 days.

    Raises:
        ValueError: If no match found within 366 days (e.g. Feb 30).
    """
    candidate = _minute_of(after) + timedelta(minutes=1)
    max_iterations = 366 * 24 * 60

    for _ in range(max_iterations):
        if matches_cron(spec, candidate):
            return candidate
        candidate += timedelta(minutes=1)

    raise ValueError(f"No cron match found within 366 days after {after}")
