"""
LedgerScheduler -- In-process polling scheduler.

Contract:
    Polls the configured schedules on an interval, evaluates
    ``should_fire()`` (pure) against the injected clock, and runs due jobs.
    Each job runs in its own session.  Job bodies commit step by step; the
    scheduler commits whatever is left on success, and on failure rolls back
    only the step that raised and logs it.  A failing job never stops the
    loop or other jobs.

Firing:
    A schedule fires at most once per matching minute, so a poll interval
    shorter than a minute never runs a job twice.  A minute that passes
    entirely between two polls is not caught up.

Non-goals:
    - NOT a distributed scheduler (no leader election).  Running it in
      several processes is safe only because payroll itself is idempotent
      per (employee, payment date).
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable, Mapping
from uuid import uuid4

from sqlalchemy.orm import Session

from ledger_batch.domain.schedule import compute_next_run, should_fire
from ledger_batch.domain.types import JobRun, JobRunStatus, ScheduledJob
from ledger_config.schema import ScheduleDefinition
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.scheduler")


class LedgerScheduler:
    """Polling scheduler for the payroll and pending-retry jobs.

    Contract:
        - ``tick()`` evaluates all enabled schedules and runs due ones.
        - ``run_job()`` runs one job now, outside any schedule.
        - ``start()`` / ``stop()`` for background thread operation.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        jobs: Mapping[str, Callable[[Session], object]],
        schedules: Iterable[ScheduleDefinition],
        clock: Clock | None = None,
        tick_interval_seconds: float = 30.0,
    ):
        self._session_factory = session_factory
        self._jobs = dict(jobs)
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self._schedules: list[ScheduledJob] = []
        for definition in schedules:
            if definition.job not in self._jobs:
                raise ValueError(
                    f"schedule {definition.name!r} names unknown job {definition.job!r}"
                )
            self._schedules.append(ScheduledJob.from_definition(definition))

    @property
    def schedules(self) -> tuple[ScheduledJob, ...]:
        return tuple(self._schedules)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> list[JobRun]:
        """Evaluate and run due schedules (public for testing).

        Returns the runs started by this tick, in schedule order.
        """
        now = self._clock.now()
        runs: list[JobRun] = []

        for index, schedule in enumerate(self._schedules):
            if self._stop_event.is_set():
                break
            if not schedule.enabled:
                continue
            if not should_fire(schedule.spec, now, schedule.last_fired_at):
                continue

            self._schedules[index] = schedule.fired(now)
            run = self._execute(schedule.name, schedule.job)
            runs.append(run)

            logger.info(
                "schedule_fired",
                extra={
                    "schedule": schedule.name,
                    "job": schedule.job,
                    "status": run.status.value,
                    "next_run_at": compute_next_run(schedule.spec, now),
                },
            )

        return runs

    def run_job(self, job: str) -> JobRun:
        """Run ``job`` immediately in its own session.

        Raises:
            KeyError: Unknown job name.
        """
        if job not in self._jobs:
            raise KeyError(job)
        return self._execute(job, job)

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="ledger-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "tick_interval": self._tick_interval,
                "schedules": [s.name for s in self._schedules if s.enabled],
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current job to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until ``stop()`` is called; True if stopped."""
        return self._stop_event.wait(timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _execute(self, schedule_name: str, job: str) -> JobRun:
        started_at = self._clock.now()
        session = self._session_factory()
        with LogContext.bind(job_name=job, correlation_id=str(uuid4())):
            logger.info("job_started", extra={"schedule": schedule_name})
            try:
                result = self._jobs[job](session)
                session.commit()
            except Exception as exc:
                session.rollback()
                logger.exception("job_failed", extra={"schedule": schedule_name})
                return JobRun(
                    schedule_name=schedule_name,
                    job=job,
                    started_at=started_at,
                    status=JobRunStatus.FAILED,
                    error=str(exc),
                )
            finally:
                session.close()

            logger.info("job_completed", extra={"schedule": schedule_name})
            return JobRun(
                schedule_name=schedule_name,
                job=job,
                started_at=started_at,
                status=JobRunStatus.SUCCEEDED,
                result=result,
            )
