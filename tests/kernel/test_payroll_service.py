"""
Tests for PayrollService: scheduled salary payments and pending retry.

Covers:
- Due-date evaluation, including day 31 in February
- PAID when funds cover the payment, PENDING plus LOW_BALANCE alert otherwise
- One payment per (employee, payment date) across repeated and racing runs
- Oldest-first retry of pending payments
- FAILED when recording breaks, with per-employee isolation
- Employee notification on payment
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from ledger_config.schema import PayrollSettings
from ledger_kernel.domain.payroll_calendar import PaymentFrequency
from ledger_kernel.domain.references import ReferenceKind
from ledger_kernel.models import (
    Alert,
    AlertType,
    Expense,
    LedgerTransaction,
    PaymentStatus,
    SalaryPayment,
    TransactionType,
)
from ledger_kernel.services.payroll_service import PaymentOutcome, PayrollService


def _payments(session, employee_id=None) -> list[SalaryPayment]:
    stmt = select(SalaryPayment).order_by(SalaryPayment.id)
    if employee_id is not None:
        stmt = stmt.where(SalaryPayment.employee_id == employee_id)
    return list(session.execute(stmt).scalars())


def _alerts(session, alert_type: AlertType) -> list[Alert]:
    return list(
        session.execute(
            select(Alert).where(Alert.alert_type == alert_type.value)
        ).scalars()
    )


# =============================================================================
# Scheduled payroll
# =============================================================================


class TestProcessSalaryPayments:
    def test_pays_monthly_employee_on_payment_day(
        self, payroll, ledger, session, make_employee
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee(salary=Decimal("1200.00"), payment_day=15)

        summary = payroll.process_salary_payments()

        assert summary.paid == 1
        [payment] = _payments(session, employee.id)
        assert payment.status == PaymentStatus.PAID
        assert payment.amount == Decimal("1200.00")
        assert payment.payment_date == date(2024, 1, 15)
        assert payment.period_start_date == date(2023, 12, 1)
        assert payment.period_end_date == date(2023, 12, 31)
        assert payment.processed_at == datetime(2024, 1, 15, 9, 0, 0)
        assert payment.failure_reason is None
        assert ledger.get_current_balance().current_balance == Decimal("3800.00")

    def test_paid_payment_books_expense_and_transaction(
        self, payroll, ledger, session, make_employee
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee(salary=Decimal("1200.00"))

        payroll.process_salary_payments()

        [payment] = _payments(session, employee.id)
        txn = session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.reference_type == ReferenceKind.SALARY_PAYMENT.value
            )
        ).scalar_one()
        assert txn.reference_id == payment.id
        assert txn.transaction_type == TransactionType.EXPENSE
        assert txn.description == "Salary payment - Ana Pérez"
        assert txn.notes == "Automatic payment - period 2023-12-01 to 2023-12-31"

        expense = session.execute(select(Expense)).scalar_one()
        assert expense.category == "Nómina"
        assert expense.amount == Decimal("1200.00")
        assert expense.payment_method == "Transferencia"

    def test_scenario_biweekly_pending_then_funded(
        self, payroll, ledger, session, make_employee, notifier
    ):
        employee = make_employee(
            salary=Decimal("2000000"),
            frequency=PaymentFrequency.BIWEEKLY,
            payment_day=15,
        )

        summary = payroll.process_salary_payments()

        assert summary.pending == 1
        [payment] = _payments(session, employee.id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == Decimal("1000000.00")
        assert payment.period_start_date == date(2023, 12, 16)
        assert payment.period_end_date == date(2023, 12, 31)
        assert payment.failure_reason.startswith("Insufficient funds")
        assert len(_alerts(session, AlertType.LOW_BALANCE)) == 1
        assert notifier.templates() == ["low_balance_alert"]

        ledger.adjust_balance(Decimal("2000000"), "funding")
        retry = payroll.process_pending_payments()

        assert retry.paid == 1
        session.refresh(payment)
        assert payment.status == PaymentStatus.PAID
        assert payment.failure_reason is None
        assert ledger.get_current_balance().current_balance == Decimal("1000000.00")
        assert notifier.templates() == ["low_balance_alert", "salary_payment"]

    def test_second_run_same_day_creates_no_new_payment(
        self, payroll, ledger, session, make_employee
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee()

        payroll.process_salary_payments()
        second = payroll.process_salary_payments()

        assert second.paid == 0
        assert second.skipped == 1
        assert len(_payments(session, employee.id)) == 1
        assert ledger.get_current_balance().current_balance == Decimal("4000.00")

    def test_second_run_same_day_keeps_single_pending_payment(
        self, payroll, session, make_employee
    ):
        employee = make_employee()

        payroll.process_salary_payments()
        payroll.process_salary_payments()

        assert len(_payments(session, employee.id)) == 1
        assert len(_alerts(session, AlertType.LOW_BALANCE)) == 1

    def test_not_payment_day_is_skipped(self, payroll, clock, session, make_employee):
        make_employee(payment_day=20)

        summary = payroll.process_salary_payments()

        assert summary.skipped == 1
        assert _payments(session) == []

    def test_payroll_inactive_employees_are_ignored(self, payroll, session, make_employee):
        make_employee(salary=None)
        make_employee(frequency=None)
        make_employee(payment_day=None)

        summary = payroll.process_salary_payments()

        assert summary.total == 0
        assert _payments(session) == []

    @pytest.mark.parametrize(
        "today, paid",
        [
            (date(2023, 2, 27), False),
            (date(2023, 2, 28), True),
            (date(2024, 2, 28), False),
            (date(2024, 2, 29), True),
        ],
    )
    def test_day_31_falls_on_last_day_of_february(
        self, payroll, ledger, clock, session, make_employee, today, paid
    ):
        clock.set_time(datetime.combine(today, datetime.min.time()).replace(hour=9))
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee(payment_day=31)

        payroll.process_salary_payments()

        payments = _payments(session, employee.id)
        assert len(payments) == (1 if paid else 0)
        if paid:
            assert payments[0].status == PaymentStatus.PAID
            assert payments[0].period_start_date == date(today.year, 1, 1)
            assert payments[0].period_end_date == date(today.year, 1, 31)

    def test_one_employee_error_does_not_stop_others(
        self, payroll, ledger, session, make_employee, captured_logs
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        broken = make_employee(name="Broken")
        broken.payment_frequency = "WEEKLY"
        healthy = make_employee(name="Luis")
        session.flush()

        summary = payroll.process_salary_payments()

        assert summary.errors == 1
        assert summary.paid == 1
        assert _payments(session, broken.id) == []
        assert _payments(session, healthy.id)[0].status == PaymentStatus.PAID
        failures = [
            r for r in captured_logs() if r["message"] == "salary_payment_employee_failed"
        ]
        assert failures[0]["employee_id"] == broken.id


# =============================================================================
# Failure during recording
# =============================================================================


class TestRecordingFailures:
    def test_expense_error_marks_failed(
        self, payroll, expenses, ledger, session, make_employee, monkeypatch
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee()

        def boom(*args, **kwargs):
            raise RuntimeError("expense table unavailable")

        monkeypatch.setattr(expenses, "create_salary_expense", boom)

        summary = payroll.process_salary_payments()

        assert summary.failed == 1
        [payment] = _payments(session, employee.id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Error processing payment: expense table unavailable"
        assert ledger.get_current_balance().current_balance == Decimal("5000")

    def test_degraded_ledger_marks_failed_and_rolls_back_expense(
        self, payroll, ledger, session, make_employee, monkeypatch
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee()

        def storage_down():
            raise OperationalError("SELECT balance", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "_locked_balance", storage_down)

        payroll.process_salary_payments()

        [payment] = _payments(session, employee.id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason.startswith("Ledger unavailable")
        assert session.execute(select(func.count()).select_from(Expense)).scalar_one() == 0

    def test_failed_payment_is_not_retried(
        self, payroll, expenses, ledger, session, make_employee, monkeypatch
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        make_employee()
        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(expenses, "create_salary_expense", boom)
        payroll.process_salary_payments()
        monkeypatch.undo()

        retry = payroll.process_pending_payments()

        assert retry.total == 0


# =============================================================================
# Pending retry
# =============================================================================


def _pending(session, employee, payment_date: date, amount: Decimal) -> SalaryPayment:
    payment = SalaryPayment(
        employee_id=employee.id,
        amount=amount,
        payment_date=payment_date,
        period_start_date=date(2023, 12, 1),
        period_end_date=date(2023, 12, 31),
        payment_frequency=PaymentFrequency.MONTHLY,
        status=PaymentStatus.PENDING,
        created_at=datetime(2024, 1, 1, 9, 0, 0),
        failure_reason="Insufficient funds. Available balance: 0",
    )
    session.add(payment)
    session.flush()
    return payment


class TestProcessPendingPayments:
    def test_oldest_payment_date_is_paid_first(
        self, payroll, ledger, session, make_employee
    ):
        employee = make_employee()
        later = _pending(session, employee, date(2024, 1, 15), Decimal("600"))
        earlier = _pending(session, employee, date(2024, 1, 1), Decimal("600"))
        ledger.initialize_balance(Decimal("1000"), Decimal("0"))

        summary = payroll.process_pending_payments()

        assert summary.paid == 1
        assert summary.pending == 1
        assert earlier.status == PaymentStatus.PAID
        assert later.status == PaymentStatus.PENDING
        assert ledger.get_current_balance().current_balance == Decimal("400")

    def test_still_unfunded_payment_is_untouched(self, payroll, session, make_employee):
        employee = make_employee()
        payment = _pending(session, employee, date(2024, 1, 1), Decimal("600"))

        summary = payroll.process_pending_payments()

        assert summary.pending == 1
        assert payment.status == PaymentStatus.PENDING
        assert payment.failure_reason == "Insufficient funds. Available balance: 0"

    def test_non_pending_payment_is_skipped(self, payroll, session, make_employee):
        employee = make_employee()
        payment = _pending(session, employee, date(2024, 1, 1), Decimal("600"))
        payment.status = PaymentStatus.PAID

        assert payroll.process_pending_payment(payment) == PaymentOutcome.SKIPPED


# =============================================================================
# Racing runs
# =============================================================================


class TestRacingRuns:
    """Runs that both pass the existence check settle on the unique key."""

    @pytest.fixture
    def blind_payroll(self, payroll, monkeypatch):
        monkeypatch.setattr(payroll, "_payment_exists", lambda employee_id, payment_date: False)
        return payroll

    def test_second_payment_for_same_day_rejected(self, session, make_employee):
        employee = make_employee()
        _pending(session, employee, date(2024, 1, 15), Decimal("1000"))

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                _pending(session, employee, date(2024, 1, 15), Decimal("1000"))

    def test_losing_run_skips_without_paying(
        self, blind_payroll, ledger, session, make_employee, notifier
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee()
        existing = _pending(session, employee, date(2024, 1, 15), Decimal("1000"))
        existing.status = PaymentStatus.PAID
        session.flush()

        summary = blind_payroll.process_salary_payments()

        assert (summary.paid, summary.skipped, summary.errors) == (0, 1, 0)
        assert len(_payments(session, employee.id)) == 1
        assert ledger.get_current_balance().current_balance == Decimal("5000")
        assert notifier.sent == []

    def test_losing_unfunded_run_raises_no_alert(
        self, blind_payroll, ledger, session, make_employee, notifier
    ):
        ledger.initialize_balance(Decimal("0"), Decimal("0"))
        employee = make_employee()
        _pending(session, employee, date(2024, 1, 15), Decimal("1000"))

        summary = blind_payroll.process_salary_payments()

        assert (summary.pending, summary.skipped) == (0, 1)
        assert _alerts(session, AlertType.LOW_BALANCE) == []
        assert notifier.sent == []


# =============================================================================
# Employee notification
# =============================================================================


class TestEmployeeNotification:
    def test_paid_employee_is_notified(self, payroll, ledger, make_employee, notifier):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        make_employee(email="ana@example.com")

        payroll.process_salary_payments()

        [sent] = notifier.sent
        assert sent["recipient"] == "ana@example.com"
        assert sent["template"] == "salary_payment"
        assert "01/12/2023 to 31/12/2023" in sent["body"]

    def test_employee_without_email_is_not_notified(
        self, payroll, ledger, make_employee, notifier
    ):
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        make_employee(email=None)

        payroll.process_salary_payments()

        assert notifier.sent == []

    def test_notification_can_be_disabled(
        self, session, ledger, alerts, expenses, notifier, clock, make_employee
    ):
        service = PayrollService(
            session, ledger, alerts, expenses, notifier, clock,
            PayrollSettings(notify_employees=False),
        )
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        make_employee()

        assert service.process_salary_payments().paid == 1
        assert notifier.sent == []

    def test_notifier_failure_does_not_undo_payment(
        self, session, ledger, alerts, expenses, clock, make_employee, failing_notifier
    ):
        service = PayrollService(
            session, ledger, alerts, expenses, failing_notifier, clock
        )
        ledger.initialize_balance(Decimal("5000"), Decimal("0"))
        employee = make_employee()

        assert service.process_salary_payments().paid == 1
        assert _payments(session, employee.id)[0].status == PaymentStatus.PAID
