"""Tests for the read-only ledger and payroll selectors."""

from datetime import date, datetime
from decimal import Decimal

from ledger_kernel.domain.payroll_calendar import PaymentFrequency
from ledger_kernel.domain.references import LedgerReference, ReferenceKind
from ledger_kernel.models import PaymentStatus, SalaryPayment, TransactionType
from ledger_kernel.selectors import LedgerSelector, PayrollSelector


def _seed_log(ledger, clock):
    clock.set_time(datetime(2024, 1, 10, 9, 0, 0))
    ledger.initialize_balance(Decimal("1000"), Decimal("100"))
    clock.set_time(datetime(2024, 1, 11, 9, 0, 0))
    ledger.record_income(Decimal("200"), "Order", 1, ReferenceKind.ORDER)
    clock.set_time(datetime(2024, 1, 12, 9, 0, 0))
    ledger.record_expense(Decimal("50"), "Gas", 9, ReferenceKind.EXPENSE)
    clock.set_time(datetime(2024, 1, 13, 9, 0, 0))
    ledger.record_income(Decimal("30"), "Order", 2, ReferenceKind.ORDER)


class TestLedgerSelector:
    def test_all_transactions_newest_first(self, ledger, clock, session):
        _seed_log(ledger, clock)

        rows = LedgerSelector(session).get_all_transactions()

        assert [r.created_at.day for r in rows] == [13, 12, 11, 10]

    def test_by_type(self, ledger, clock, session):
        _seed_log(ledger, clock)

        rows = LedgerSelector(session).get_transactions_by_type(TransactionType.INCOME)

        assert [r.amount for r in rows] == [Decimal("30"), Decimal("200")]

    def test_between_dates_is_inclusive(self, ledger, clock, session):
        _seed_log(ledger, clock)

        rows = LedgerSelector(session).get_transactions_between_dates(
            datetime(2024, 1, 11, 9, 0, 0), datetime(2024, 1, 12, 9, 0, 0)
        )

        assert [r.description for r in rows] == ["Gas", "Order"]

    def test_by_reference(self, ledger, clock, session):
        _seed_log(ledger, clock)

        [row] = LedgerSelector(session).get_transactions_by_reference(
            LedgerReference.order(2)
        )

        assert row.amount == Decimal("30")

    def test_summarize(self, ledger, clock, session):
        _seed_log(ledger, clock)

        summary = LedgerSelector(session).summarize()

        assert summary.total(TransactionType.INCOME) == Decimal("230")
        assert summary.total(TransactionType.REFUND) == Decimal("0")
        assert summary.counts[TransactionType.INCOME] == 2
        assert summary.total_credits == Decimal("1230")
        assert summary.total_debits == Decimal("50")
        assert summary.net == ledger.get_current_balance().current_balance

    def test_summarize_window(self, ledger, clock, session):
        _seed_log(ledger, clock)

        summary = LedgerSelector(session).summarize(
            start=datetime(2024, 1, 12, 0, 0, 0)
        )

        assert summary.net == Decimal("-20")


class TestPayrollSelector:
    def _payment(self, session, employee, day: int, status: PaymentStatus):
        payment = SalaryPayment(
            employee_id=employee.id,
            amount=Decimal("100"),
            payment_date=date(2024, 1, day),
            period_start_date=date(2023, 12, 1),
            period_end_date=date(2023, 12, 31),
            payment_frequency=PaymentFrequency.MONTHLY,
            status=status,
            created_at=datetime(2024, 1, day, 9, 0, 0),
        )
        session.add(payment)
        session.flush()
        return payment

    def test_pending_oldest_first(self, session, make_employee):
        employee = make_employee()
        self._payment(session, employee, 15, PaymentStatus.PENDING)
        self._payment(session, employee, 1, PaymentStatus.PENDING)
        self._payment(session, employee, 5, PaymentStatus.PAID)

        pending = PayrollSelector(session).get_pending_payments()

        assert [p.payment_date.day for p in pending] == [1, 15]

    def test_by_employee_and_window(self, session, make_employee):
        ana = make_employee()
        luis = make_employee(name="Luis")
        self._payment(session, ana, 1, PaymentStatus.PAID)
        self._payment(session, ana, 15, PaymentStatus.PAID)
        self._payment(session, luis, 15, PaymentStatus.FAILED)
        selector = PayrollSelector(session)

        assert [p.payment_date.day for p in selector.get_payments_by_employee(ana.id)] == [15, 1]
        assert len(selector.get_all_payments(start=date(2024, 1, 10))) == 2
        assert len(selector.get_all_payments()) == 3

    def test_alerts(self, session, alerts):
        first = alerts.send_low_balance_alert(Decimal("10"), Decimal("0"))
        alerts.send_low_balance_alert(Decimal("20"), Decimal("0"))
        alerts.resolve_alert(first.id)
        selector = PayrollSelector(session)

        assert len(selector.get_active_alerts()) == 1
        assert len(selector.get_all_alerts()) == 2
