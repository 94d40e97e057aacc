"""Pure scheduling types and cron evaluation. ZERO I/O."""

from ledger_batch.domain.schedule import (
    CronSpec,
    compute_next_run,
    matches_cron,
    parse_cron,
    should_fire,
)
from ledger_batch.domain.types import JobRun, JobRunStatus, ScheduledJob

__all__ = [
    "CronSpec",
    "JobRun",
    "JobRunStatus",
    "ScheduledJob",
    "compute_next_run",
    "matches_cron",
    "parse_cron",
    "should_fire",
]
