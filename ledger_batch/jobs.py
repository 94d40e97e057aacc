"""
Job bodies run by the scheduler and the operator CLI.

Jobs:
    payroll_cycle  process salary payments, retry pending payments, evaluate
                   alerts
    pending_retry  retry pending payments, evaluate alerts

Each job receives an open Session.  Every step commits on its own before the
next one starts, so a failure in a later step never undoes salaries already
paid.  Notifications wait in a CommitBoundNotifier and go out only after the
commit that makes them true; the scheduler rolls back whatever step failed.
Services are wired fresh for every run from the active settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from ledger_config.schema import AppSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.alert_service import AlertService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification import (
    CommitBoundNotifier,
    Notifier,
    build_notifier,
)
from ledger_kernel.services.payroll_service import PayrollRunSummary, PayrollService

logger = get_logger("batch.jobs")

PAYROLL_CYCLE = "payroll_cycle"
PENDING_RETRY = "pending_retry"

JobFunction = Callable[[Session], "JobReport"]


@dataclass(frozen=True)
class KernelServices:
    """The services one job run works with, sharing one session."""

    session: Session
    outbox: CommitBoundNotifier
    ledger: LedgerService
    alerts: AlertService
    expenses: ExpenseService
    payroll: PayrollService

    def commit(self) -> int:
        """Commit the session, then deliver what the committed work announced."""
        self.session.commit()
        return self.outbox.flush()


@dataclass(frozen=True)
class JobReport:
    """What a job run did."""

    salary: PayrollRunSummary | None = None
    pending: PayrollRunSummary | None = None
    alerts_created: int = 0


def build_services(
    session: Session,
    settings: AppSettings,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> KernelServices:
    clock = clock or SystemClock(settings.scheduler.timezone)
    outbox = CommitBoundNotifier(
        session, notifier or build_notifier(settings.notifications)
    )

    ledger = LedgerService(session, clock, settings.ledger)
    alerts = AlertService(
        session,
        ledger,
        outbox,
        clock,
        admin_email=settings.notifications.admin_email,
    )
    expenses = ExpenseService(session, ledger, settings.ledger, settings.payroll)
    payroll = PayrollService(
        session,
        ledger,
        alerts,
        expenses,
        outbox,
        clock,
        settings.payroll,
    )
    return KernelServices(session, outbox, ledger, alerts, expenses, payroll)


def run_payroll_cycle(services: KernelServices) -> JobReport:
    salary = services.payroll.process_salary_payments()
    services.commit()
    pending = services.payroll.process_pending_payments()
    services.commit()
    alerts = services.alerts.check_and_create_alerts()
    services.commit()
    return JobReport(salary=salary, pending=pending, alerts_created=len(alerts))


def run_pending_retry(services: KernelServices) -> JobReport:
    pending = services.payroll.process_pending_payments()
    services.commit()
    alerts = services.alerts.check_and_create_alerts()
    services.commit()
    return JobReport(pending=pending, alerts_created=len(alerts))


_JOB_BODIES: dict[str, Callable[[KernelServices], JobReport]] = {
    PAYROLL_CYCLE: run_payroll_cycle,
    PENDING_RETRY: run_pending_retry,
}


def build_job_registry(
    settings: AppSettings,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> dict[str, JobFunction]:
    """Map each job name to a callable taking an open Session."""
    notifier = notifier or build_notifier(settings.notifications)

    def bind(body: Callable[[KernelServices], JobReport]) -> JobFunction:
        def run(session: Session) -> JobReport:
            return body(build_services(session, settings, clock, notifier))

        return run

    return {name: bind(body) for name, body in _JOB_BODIES.items()}
