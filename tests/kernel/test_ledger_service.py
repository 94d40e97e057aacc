"""
Tests for LedgerService: balance access, recording, adjustment, deletion
and recomputation.

Covers:
- Lazy balance creation and degraded reads
- One-shot initialization recorded as an ADJUSTMENT from zero
- Income / expense recording with before/after snapshots
- Degraded recording when storage fails
- Signed adjustments stored as magnitudes
- Deleting a mid-log transaction rewrites every later snapshot
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ledger_kernel.domain.references import ReferenceKind
from ledger_kernel.exceptions import (
    BalanceAlreadyInitializedError,
    InvalidAmountError,
    TransactionNotFoundError,
)
from ledger_kernel.models import Balance, LedgerTransaction, TransactionType
from ledger_kernel.services.ledger_service import RecordingStatus


def _storage_down(*args, **kwargs):
    raise OperationalError("SELECT balance", {}, Exception("database is locked"))


def _count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


# =============================================================================
# Balance access
# =============================================================================


class TestGetCurrentBalance:
    def test_creates_zero_balance_with_default_threshold(self, ledger, session):
        balance = ledger.get_current_balance()

        assert balance.id is not None
        assert balance.current_balance == Decimal("0")
        assert balance.low_balance_threshold == Decimal("100.00")
        assert _count(session, Balance) == 1

    def test_returns_same_row_on_repeated_calls(self, ledger, session):
        first = ledger.get_current_balance()
        second = ledger.get_current_balance()

        assert first.id == second.id
        assert _count(session, Balance) == 1

    def test_storage_error_returns_transient_zero_balance(
        self, ledger, monkeypatch, captured_logs
    ):
        monkeypatch.setattr(ledger, "_find_balance", _storage_down)

        balance = ledger.get_current_balance()

        assert balance.id is None
        assert balance.current_balance == Decimal("0")
        assert balance.low_balance_threshold == Decimal("100.00")
        assert any(r["message"] == "balance_read_degraded" for r in captured_logs())


class TestInitializeBalance:
    def test_records_adjustment_from_zero(self, ledger, session):
        balance = ledger.initialize_balance(Decimal("1000"), Decimal("200"))

        assert balance.current_balance == Decimal("1000")
        assert balance.low_balance_threshold == Decimal("200")

        txn = session.execute(select(LedgerTransaction)).scalar_one()
        assert txn.transaction_type == TransactionType.ADJUSTMENT
        assert txn.amount == Decimal("1000")
        assert txn.balance_before == Decimal("0")
        assert txn.balance_after == Decimal("1000")
        assert txn.reference_type == ReferenceKind.BALANCE.value
        assert txn.reference_id == balance.id

    def test_second_initialization_rejected(self, ledger):
        ledger.initialize_balance(Decimal("1000"), Decimal("200"))

        with pytest.raises(BalanceAlreadyInitializedError) as exc_info:
            ledger.initialize_balance(Decimal("5"), Decimal("1"))

        assert exc_info.value.current_balance == Decimal("1000")
        assert exc_info.value.code == "BALANCE_ALREADY_INITIALIZED"

    def test_rejected_after_lazy_creation(self, ledger):
        ledger.get_current_balance()

        with pytest.raises(BalanceAlreadyInitializedError):
            ledger.initialize_balance(Decimal("1000"), Decimal("200"))

    @pytest.mark.parametrize(
        "initial, threshold",
        [(Decimal("-1"), Decimal("0")), (Decimal("0"), Decimal("-0.01"))],
    )
    def test_negative_inputs_rejected(self, ledger, session, initial, threshold):
        with pytest.raises(InvalidAmountError):
            ledger.initialize_balance(initial, threshold)

        assert _count(session, Balance) == 0

    def test_initial_capital_survives_recomputation(self, ledger):
        ledger.initialize_balance(Decimal("1000"), Decimal("200"))
        ledger.record_income(Decimal("50"), "Order")

        result = ledger.recalculate_balance_from_all_transactions()

        assert result.final_balance == Decimal("1050")
        assert ledger.get_current_balance().current_balance == Decimal("1050")


class TestThresholdAndQueries:
    def test_update_threshold(self, ledger):
        ledger.initialize_balance(Decimal("500"), Decimal("200"))

        ledger.update_low_balance_threshold(Decimal("600"))

        assert ledger.is_low_balance()
        assert ledger.get_balance_difference() == Decimal("-100")

    def test_negative_threshold_rejected(self, ledger):
        with pytest.raises(InvalidAmountError):
            ledger.update_low_balance_threshold(Decimal("-1"))

    def test_has_sufficient_funds_is_inclusive(self, ledger):
        ledger.initialize_balance(Decimal("300"), Decimal("0"))

        assert ledger.has_sufficient_funds(Decimal("300"))
        assert not ledger.has_sufficient_funds(Decimal("300.01"))


# =============================================================================
# Recording
# =============================================================================


class TestRecording:
    def test_income_adds_and_snapshots(self, ledger):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))

        result = ledger.record_income(
            Decimal("25.50"), "Order #1", 1, ReferenceKind.ORDER, "table 4"
        )

        assert result.status == RecordingStatus.RECORDED
        assert result.is_durable
        txn = result.transaction
        assert txn.id is not None
        assert txn.balance_before == Decimal("100")
        assert txn.balance_after == Decimal("125.50")
        assert txn.reference_type == "ORDER"
        assert txn.reference_id == 1
        assert ledger.get_current_balance().current_balance == Decimal("125.50")

    def test_scenario_expense_below_zero(self, ledger):
        ledger.initialize_balance(Decimal("1000"), Decimal("200"))

        result = ledger.record_expense(Decimal("1500"), "Oven repair")

        assert result.transaction.balance_after == Decimal("-500")
        assert ledger.is_low_balance()

    def test_first_recording_creates_balance(self, ledger, session):
        result = ledger.record_income(Decimal("10"), "Tip")

        assert result.transaction.balance_before == Decimal("0")
        assert _count(session, Balance) == 1

    def test_negative_amount_rejected(self, ledger, session):
        with pytest.raises(InvalidAmountError):
            ledger.record_income(Decimal("-1"), "Bad")

        assert _count(session, LedgerTransaction) == 0

    def test_salary_payment_is_expense_referencing_payment(self, ledger):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))

        result = ledger.record_salary_payment(Decimal("40"), 7, "Ana Pérez")

        txn = result.transaction
        assert txn.transaction_type == TransactionType.EXPENSE
        assert txn.reference_type == ReferenceKind.SALARY_PAYMENT.value
        assert txn.reference_id == 7
        assert txn.description == "Salary payment - Ana Pérez"
        assert txn.balance_after == Decimal("60")

    def test_storage_failure_degrades(self, ledger, session, monkeypatch, captured_logs):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))
        monkeypatch.setattr(ledger, "_locked_balance", _storage_down)

        result = ledger.record_expense(Decimal("30"), "Gas", 3, ReferenceKind.EXPENSE)

        assert result.status == RecordingStatus.DEGRADED
        assert not result.is_durable
        assert result.transaction.id is None
        assert result.transaction.amount == Decimal("30")
        assert "database is locked" in result.message
        assert _count(session, LedgerTransaction) == 1
        monkeypatch.undo()
        assert ledger.get_current_balance().current_balance == Decimal("100")
        assert any(r["message"] == "ledger_recording_degraded" for r in captured_logs())

    def test_recorded_event_logged(self, ledger, captured_logs):
        ledger.record_income(Decimal("10"), "Tip")

        records = [r for r in captured_logs() if r["message"] == "transaction_recorded"]
        assert len(records) == 1
        assert records[0]["transaction_type"] == "INCOME"
        assert records[0]["balance_after"] == "10"


class TestAdjustBalance:
    def test_positive_adjustment(self, ledger):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))

        txn = ledger.adjust_balance(Decimal("50"), "Owner top-up")

        assert txn.transaction_type == TransactionType.ADJUSTMENT
        assert txn.amount == Decimal("50")
        assert txn.balance_after == Decimal("150")
        assert txn.description == "Owner top-up"

    def test_negative_adjustment_stores_magnitude(self, ledger, captured_logs):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))

        txn = ledger.adjust_balance(Decimal("-40"), "Cash count correction")

        assert txn.amount == Decimal("40")
        assert txn.balance_before == Decimal("100")
        assert txn.balance_after == Decimal("60")
        assert ledger.get_current_balance().current_balance == Decimal("60")
        assert any(
            r["message"] == "negative_adjustment_recorded" for r in captured_logs()
        )

    def test_negative_adjustment_replays_as_credit(self, ledger):
        ledger.initialize_balance(Decimal("100"), Decimal("0"))
        ledger.adjust_balance(Decimal("-40"))

        result = ledger.recalculate_balance_from_all_transactions()

        # The stored magnitude loses the sign
        assert result.final_balance == Decimal("140")


# =============================================================================
# Deletion and recomputation
# =============================================================================


class TestDeleteTransaction:
    def test_mid_log_deletion_rewrites_later_snapshots(self, ledger, clock, session):
        ledger.initialize_balance(Decimal("1000"), Decimal("0"))
        clock.advance(60)
        ledger.record_income(Decimal("200"), "Order A")
        clock.advance(60)
        middle = ledger.record_expense(Decimal("300"), "Supplier").transaction
        clock.advance(60)
        ledger.record_income(Decimal("50"), "Order B")
        clock.advance(60)
        ledger.record_expense(Decimal("25"), "Ice")

        result = ledger.delete_transaction(middle.id)

        rows = list(
            session.execute(
                select(LedgerTransaction).order_by(
                    LedgerTransaction.created_at, LedgerTransaction.id
                )
            ).scalars()
        )
        assert [(r.balance_before, r.balance_after) for r in rows] == [
            (Decimal("0"), Decimal("1000")),
            (Decimal("1000"), Decimal("1200")),
            (Decimal("1200"), Decimal("1250")),
            (Decimal("1250"), Decimal("1225")),
        ]
        assert result.final_balance == Decimal("1225")
        assert result.previous_balance == Decimal("925")
        assert result.transactions_processed == 4
        assert result.transactions_updated == 2
        assert ledger.get_current_balance().current_balance == Decimal("1225")

    def test_unknown_id(self, ledger):
        with pytest.raises(TransactionNotFoundError) as exc_info:
            ledger.delete_transaction(999)

        assert exc_info.value.transaction_id == 999

    def test_deleting_only_transaction_keeps_balance(self, ledger):
        txn = ledger.record_income(Decimal("10"), "Tip").transaction

        result = ledger.delete_transaction(txn.id)

        assert result.transactions_processed == 0
        assert ledger.get_current_balance().current_balance == Decimal("10")


class TestRecalculate:
    def test_orders_by_created_at_then_id(self, ledger, clock, session):
        base = datetime(2024, 1, 10, 8, 0, 0)
        clock.set_time(base + timedelta(hours=2))
        late = ledger.record_expense(Decimal("30"), "Late expense").transaction
        clock.set_time(base)
        early = ledger.record_income(Decimal("100"), "Early income").transaction

        result = ledger.recalculate_balance_from_all_transactions()

        session.refresh(early)
        session.refresh(late)
        assert (early.balance_before, early.balance_after) == (Decimal("0"), Decimal("100"))
        assert (late.balance_before, late.balance_after) == (Decimal("100"), Decimal("70"))
        assert result.final_balance == Decimal("70")
        assert result.changed

    def test_same_instant_ties_broken_by_id(self, ledger, session):
        first = ledger.record_expense(Decimal("5"), "First").transaction
        second = ledger.record_income(Decimal("20"), "Second").transaction
        first.balance_before = first.balance_after = Decimal("999")
        session.flush()

        ledger.recalculate_balance_from_all_transactions()

        assert (first.balance_before, first.balance_after) == (Decimal("0"), Decimal("-5"))
        assert (second.balance_before, second.balance_after) == (Decimal("-5"), Decimal("15"))

    def test_consistent_log_is_untouched(self, ledger):
        ledger.record_income(Decimal("20"), "A")
        ledger.record_expense(Decimal("5"), "B")

        result = ledger.recalculate_balance_from_all_transactions()

        assert result.transactions_processed == 2
        assert result.transactions_updated == 0
        assert not result.changed

    def test_empty_log_leaves_balance(self, ledger, captured_logs):
        balance = ledger.get_current_balance()
        balance.current_balance = Decimal("42")

        result = ledger.recalculate_balance_from_all_transactions()

        assert result.final_balance == Decimal("42")
        assert any(
            r["message"] == "recompute_skipped_empty_log" for r in captured_logs()
        )
