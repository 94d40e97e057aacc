"""
Payroll service -- salary disbursement gated on available funds.

Per employee and pay date:

    not due --(today is the adjusted payment day, no payment for today)--> attempt
    attempt --(funds sufficient)--> PAID
    attempt --(funds short)-------> PENDING + LOW_BALANCE alert
    PENDING --(retry, funds arrived)--> PAID
    attempt/retry --(error while recording)--> FAILED

Idempotence:
    A payment is created at most once per (employee, payment_date).  The
    existence check skips the common case; the unique constraint decides
    races between concurrent runs, and the loser skips the employee.

Isolation:
    Each employee (and each pending retry) runs in its own SAVEPOINT; an
    exception is logged and rolls back only that employee's work.  The
    recording steps of a payment (payroll expense + ledger entry) run in a
    nested SAVEPOINT so a failure there leaves the payment row in place,
    marked FAILED with the reason.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date
from enum import Enum

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_config.schema import PayrollSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.payroll_calendar import (
    PaymentFrequency,
    PayPeriod,
    due_period,
    payment_amount,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.employee import Employee
from ledger_kernel.models.salary_payment import PaymentStatus, SalaryPayment
from ledger_kernel.services.alert_service import AlertService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification import (
    LoggingNotifier,
    Notifier,
    deliver_safely,
)

logger = get_logger("services.payroll")


class PaymentOutcome(str, Enum):
    """What one employee or one pending payment ended up as in a run."""

    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PayrollRunSummary:
    """Counts for one payroll or pending-retry run."""

    paid: int = 0
    pending: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0

    @classmethod
    def from_counts(cls, counts: Counter) -> "PayrollRunSummary":
        return cls(
            paid=counts[PaymentOutcome.PAID],
            pending=counts[PaymentOutcome.PENDING],
            failed=counts[PaymentOutcome.FAILED],
            skipped=counts[PaymentOutcome.SKIPPED],
            errors=counts["errors"],
        )

    @property
    def total(self) -> int:
        return self.paid + self.pending + self.failed + self.skipped + self.errors


class PayrollService(BaseService[SalaryPayment]):
    """
    Creates and settles salary payments.

    Contract:
        Flushes within the caller's transaction and never commits.
    """

    def __init__(
        self,
        session: Session,
        ledger: LedgerService,
        alerts: AlertService,
        expenses: ExpenseService,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        settings: PayrollSettings | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._alerts = alerts
        self._expenses = expenses
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._settings = settings or PayrollSettings()

    # =========================================================================
    # Scheduled payroll
    # =========================================================================

    def process_salary_payments(self) -> PayrollRunSummary:
        """Pay every payroll-active employee whose payment day is today."""
        today = self._clock.today()
        employees = list(
            self.session.execute(
                select(Employee)
                .where(
                    Employee.salary.is_not(None),
                    Employee.payment_frequency.is_not(None),
                    Employee.payment_day.is_not(None),
                )
                .order_by(Employee.id)
            ).scalars()
        )
        logger.info(
            "salary_payments_started",
            extra={"payment_date": today, "employee_count": len(employees)},
        )

        counts: Counter = Counter()
        for employee in employees:
            savepoint = self.session.begin_nested()
            try:
                outcome = self._process_employee(employee, today)
                savepoint.commit()
                counts[outcome] += 1
            except Exception:
                savepoint.rollback()
                counts["errors"] += 1
                logger.exception(
                    "salary_payment_employee_failed",
                    extra={"employee_id": employee.id},
                )

        summary = PayrollRunSummary.from_counts(counts)
        logger.info(
            "salary_payments_completed",
            extra={
                "paid": summary.paid,
                "pending": summary.pending,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "errors": summary.errors,
            },
        )
        return summary

    def _payment_exists(self, employee_id: int, payment_date: date) -> bool:
        return self.session.execute(
            select(
                exists().where(
                    SalaryPayment.employee_id == employee_id,
                    SalaryPayment.payment_date == payment_date,
                )
            )
        ).scalar()

    def _process_employee(self, employee: Employee, today: date) -> PaymentOutcome:
        frequency = PaymentFrequency(employee.payment_frequency)
        period = due_period(employee.payment_day, frequency, today)
        if period is None:
            return PaymentOutcome.SKIPPED

        if self._payment_exists(employee.id, today):
            logger.info(
                "salary_payment_already_processed",
                extra={"employee_id": employee.id, "payment_date": today},
            )
            return PaymentOutcome.SKIPPED

        amount = payment_amount(employee.salary, frequency)

        if not self._ledger.has_sufficient_funds(amount):
            available = self._ledger.get_current_balance().current_balance
            payment = self._new_payment(employee, amount, today, period, frequency)
            payment.failure_reason = f"Insufficient funds. Available balance: {available}"
            if not self._claim(payment):
                return PaymentOutcome.SKIPPED
            self._alerts.send_low_balance_alert(amount, available)
            logger.warning(
                "salary_payment_deferred",
                extra={
                    "employee_id": employee.id,
                    "payment_id": payment.id,
                    "amount": amount,
                    "available_balance": available,
                },
            )
            return PaymentOutcome.PENDING

        payment = self._new_payment(employee, amount, today, period, frequency)
        if not self._claim(payment):
            return PaymentOutcome.SKIPPED
        return self._settle(
            payment,
            employee,
            f"Automatic payment - period {period.start} to {period.end}",
        )

    def _claim(self, payment: SalaryPayment) -> bool:
        """Insert ``payment``; False if another run already holds its day."""
        try:
            with self.session.begin_nested():
                self.session.add(payment)
                self.session.flush()
        except IntegrityError:
            logger.info(
                "salary_payment_already_claimed",
                extra={
                    "employee_id": payment.employee_id,
                    "payment_date": payment.payment_date,
                },
            )
            return False
        return True

    def _new_payment(
        self,
        employee: Employee,
        amount,
        today: date,
        period: PayPeriod,
        frequency: PaymentFrequency,
    ) -> SalaryPayment:
        return SalaryPayment(
            employee_id=employee.id,
            amount=amount,
            payment_date=today,
            period_start_date=period.start,
            period_end_date=period.end,
            payment_frequency=frequency,
            status=PaymentStatus.PENDING,
            created_at=self._clock.now(),
        )

    # =========================================================================
    # Pending retry
    # =========================================================================

    def process_pending_payments(self) -> PayrollRunSummary:
        """Retry every PENDING payment, oldest payment date first."""
        pending = list(
            self.session.execute(
                select(SalaryPayment)
                .where(SalaryPayment.status == PaymentStatus.PENDING.value)
                .order_by(SalaryPayment.payment_date, SalaryPayment.id)
            ).scalars()
        )
        logger.info("pending_payments_started", extra={"pending_count": len(pending)})

        counts: Counter = Counter()
        for payment in pending:
            savepoint = self.session.begin_nested()
            try:
                outcome = self.process_pending_payment(payment)
                savepoint.commit()
                counts[outcome] += 1
            except Exception:
                savepoint.rollback()
                counts["errors"] += 1
                logger.exception(
                    "pending_payment_failed",
                    extra={"payment_id": payment.id},
                )

        summary = PayrollRunSummary.from_counts(counts)
        logger.info(
            "pending_payments_completed",
            extra={
                "paid": summary.paid,
                "pending": summary.pending,
                "failed": summary.failed,
                "errors": summary.errors,
            },
        )
        return summary

    def process_pending_payment(self, payment: SalaryPayment) -> PaymentOutcome:
        """Settle one PENDING payment if funds now cover it."""
        if payment.status != PaymentStatus.PENDING:
            return PaymentOutcome.SKIPPED

        if not self._ledger.has_sufficient_funds(payment.amount):
            logger.debug(
                "pending_payment_still_unfunded",
                extra={"payment_id": payment.id, "amount": payment.amount},
            )
            return PaymentOutcome.PENDING

        return self._settle(
            payment,
            payment.employee,
            "Automatic payment processed - period "
            f"{payment.period_start_date} to {payment.period_end_date}",
        )

    # =========================================================================
    # Settlement
    # =========================================================================

    def _settle(
        self,
        payment: SalaryPayment,
        employee: Employee,
        notes: str,
    ) -> PaymentOutcome:
        """Book the expense and ledger entry, then mark PAID or FAILED."""
        with LogContext.bind(payment_id=payment.id):
            recording = self.session.begin_nested()
            try:
                self._expenses.create_salary_expense(
                    employee, payment.amount, payment.payment_date
                )
                result = self._ledger.record_salary_payment(
                    payment.amount, payment.id, employee.full_name, notes
                )
            except Exception as exc:
                recording.rollback()
                logger.exception(
                    "salary_payment_recording_failed",
                    extra={"employee_id": employee.id},
                )
                return self._mark_failed(payment, f"Error processing payment: {exc}")

            if not result.is_durable:
                recording.rollback()
                return self._mark_failed(
                    payment, f"Ledger unavailable: {result.message}"
                )

            recording.commit()
            payment.status = PaymentStatus.PAID
            payment.processed_at = self._clock.now()
            payment.failure_reason = None
            self.session.flush()

            logger.info(
                "salary_payment_paid",
                extra={
                    "employee_id": employee.id,
                    "amount": payment.amount,
                    "period_start": payment.period_start_date,
                    "period_end": payment.period_end_date,
                    "transaction_id": result.transaction.id,
                },
            )
            self._notify_employee(payment, employee)
            return PaymentOutcome.PAID

    def _mark_failed(self, payment: SalaryPayment, reason: str) -> PaymentOutcome:
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason[:500]
        self.session.flush()
        logger.error(
            "salary_payment_failed",
            extra={"payment_id": payment.id, "reason": reason},
        )
        return PaymentOutcome.FAILED

    def _notify_employee(self, payment: SalaryPayment, employee: Employee) -> None:
        if not self._settings.notify_employees:
            return
        if not employee.email or not employee.email.strip():
            return
        period = PayPeriod(payment.period_start_date, payment.period_end_date)
        deliver_safely(
            self._notifier,
            employee.email,
            "Salary payment processed",
            "salary_payment",
            {
                "employee_name": employee.full_name,
                "amount": payment.amount,
                "payment_date": payment.payment_date.strftime("%d/%m/%Y"),
                "period": period.format(),
            },
        )
