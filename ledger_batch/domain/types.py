"""
ledger_batch.domain.types -- Frozen value types for scheduled jobs.

ZERO I/O.  The scheduler keeps one ``ScheduledJob`` per configured schedule
and produces one ``JobRun`` per execution.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ledger_batch.domain.schedule import CronSpec, parse_cron


class JobRunStatus(str, Enum):
    """Outcome of one job execution."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ScheduledJob:
    """A configured schedule with its parsed cron and last firing time."""

    name: str
    job: str
    cron_expression: str
    spec: CronSpec
    enabled: bool = True
    last_fired_at: datetime | None = None

    @classmethod
    def from_definition(cls, definition: Any) -> ScheduledJob:
        """Build from a ``ScheduleDefinition``.

        Raises:
            ValueError: If the cron expression is malformed.
        """
        return cls(
            name=definition.name,
            job=definition.job,
            cron_expression=definition.cron,
            spec=parse_cron(definition.cron),
            enabled=definition.enabled,
        )

    def fired(self, at: datetime) -> ScheduledJob:
        return replace(self, last_fired_at=at)


@dataclass(frozen=True)
class JobRun:
    """Result of running one scheduled job once."""

    schedule_name: str
    job: str
    started_at: datetime
    status: JobRunStatus
    result: Any = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobRunStatus.SUCCEEDED
