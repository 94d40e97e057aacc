"""
Ledger service -- the running balance and its transaction log.

The Ledger is responsible for:
- Keeping the Balance singleton and the transaction log consistent
- Recording income, expenses, salary payments and manual adjustments
- Backfilling completed orders, deliveries and expenses exactly once
- Replaying the log chronologically to repair snapshots after deletions
  and out-of-order inserts

The Ledger does NOT:
- Decide when salaries are due (that's the PayrollService)
- Raise or resolve alerts (that's the AlertService)
- Commit the caller's transaction

Concurrency:
    Every mutation runs in its own SAVEPOINT and reads the Balance row with
    SELECT ... FOR UPDATE first, so concurrent writers serialise on the
    balance row and a failed mutation rolls back only itself.
    Recomputation takes the same lock before reading the log.

Degraded mode:
    Storage errors while reading the balance or recording income/expenses
    do not propagate.  ``get_current_balance`` returns a transient zero
    balance and ``record_income``/``record_expense`` return a
    ``LedgerResult`` with status DEGRADED carrying an unsaved transaction,
    so order taking and expense entry keep working when the ledger tables
    are unavailable.  Callers that care check ``result.is_durable``.
"""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.references import LedgerReference, ReferenceKind
from ledger_kernel.exceptions import (
    BalanceAlreadyInitializedError,
    InvalidAmountError,
    LedgerKernelError,
    MigrationError,
    RecomputationError,
    TransactionNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.balance import Balance
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.sales import Delivery, Order
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionType,
    apply_transaction,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger")

_ZERO = Decimal("0")

# Expenses carry only a date; they are placed at noon on that day
_EXPENSE_SOURCE_TIME = time(12, 0)


class RecordingStatus(str, Enum):
    """Whether a ledger write reached storage."""

    RECORDED = "recorded"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class LedgerResult:
    """
    Result of recording income or an expense.

    A DEGRADED result carries an unsaved transaction with the snapshots the
    ledger would have written; nothing was persisted.
    """

    status: RecordingStatus
    transaction: LedgerTransaction
    message: str | None = None

    @classmethod
    def recorded(cls, transaction: LedgerTransaction) -> "LedgerResult":
        return cls(status=RecordingStatus.RECORDED, transaction=transaction)

    @classmethod
    def degraded(cls, transaction: LedgerTransaction, message: str) -> "LedgerResult":
        return cls(
            status=RecordingStatus.DEGRADED,
            transaction=transaction,
            message=message,
        )

    @property
    def is_durable(self) -> bool:
        return self.status == RecordingStatus.RECORDED


@dataclass(frozen=True)
class MigrationResult:
    """Counts and totals of one historical backfill run."""

    orders_migrated: int
    deliveries_migrated: int
    expenses_migrated: int
    total_orders_revenue: Decimal
    total_deliveries_revenue: Decimal
    total_expenses: Decimal

    @property
    def total_revenue(self) -> Decimal:
        return self.total_orders_revenue + self.total_deliveries_revenue

    @property
    def net_balance(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def total_migrated(self) -> int:
        return self.orders_migrated + self.deliveries_migrated + self.expenses_migrated


@dataclass(frozen=True)
class RecomputationResult:
    """Outcome of a chronological replay of the transaction log."""

    transactions_processed: int
    transactions_updated: int
    previous_balance: Decimal
    final_balance: Decimal

    @property
    def changed(self) -> bool:
        return self.previous_balance != self.final_balance or self.transactions_updated > 0


def _reference_value(reference_type: ReferenceKind | str | None) -> str | None:
    if reference_type is None:
        return None
    return ReferenceKind(reference_type).value


class LedgerService(BaseService[LedgerTransaction]):
    """
    Owns every write to the Balance singleton and the transaction log.

    Contract:
        Flushes within the caller's transaction and never commits.

    Guarantees:
        - After any mutation, balance.current_balance equals the last
          transaction's balance_after.
        - After recomputation, every row satisfies
          balance_after == apply(balance_before, row) in (created_at, id)
          order starting from zero.
        - Historical migration never inserts a second transaction for a
          (reference_type, reference_id) that already has one.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

    # =========================================================================
    # Balance access
    # =========================================================================

    def _new_balance(
        self,
        initial: Decimal = _ZERO,
        threshold: Decimal | None = None,
    ) -> Balance:
        if threshold is None:
            threshold = self._settings.default_low_balance_threshold
        return Balance(
            current_balance=initial,
            low_balance_threshold=threshold,
            last_updated=self._clock.now(),
        )

    def _find_balance(self, lock: bool = False) -> Balance | None:
        stmt = select(Balance).order_by(Balance.id).limit(1)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _locked_balance(self) -> Balance:
        """Balance row locked for update, created if absent."""
        balance = self._find_balance(lock=True)
        if balance is None:
            logger.warning("balance_created_lazily")
            balance = self._new_balance()
            self.session.add(balance)
            self.session.flush()
        return balance

    def get_current_balance(self) -> Balance:
        """
        Return the balance singleton, creating it with zero if absent.

        Never raises: on a storage error a transient, unsaved zero balance
        with the default threshold is returned instead.
        """
        try:
            with self.session.begin_nested():
                balance = self._find_balance()
                if balance is None:
                    logger.warning("balance_created_lazily")
                    balance = self._new_balance()
                    self.session.add(balance)
                    self.session.flush()
                return balance
        except SQLAlchemyError:
            logger.warning("balance_read_degraded", exc_info=True)
            return self._new_balance()

    def initialize_balance(
        self,
        initial_balance: Decimal,
        low_balance_threshold: Decimal,
    ) -> Balance:
        """
        Create the balance with opening capital.

        The opening capital is recorded as an ADJUSTMENT from zero so that
        a replay of the log reproduces it.

        Raises:
            BalanceAlreadyInitializedError: A balance row already exists.
            InvalidAmountError: Negative capital or threshold.
        """
        self._require_non_negative("initial_balance", initial_balance)
        self._require_non_negative("low_balance_threshold", low_balance_threshold)

        existing = self._find_balance(lock=True)
        if existing is not None:
            raise BalanceAlreadyInitializedError(existing.id, existing.current_balance)

        now = self._clock.now()
        with self.session.begin_nested():
            balance = self._new_balance(initial_balance, low_balance_threshold)
            self.session.add(balance)
            self.session.flush()

            transaction = LedgerTransaction(
                transaction_type=TransactionType.ADJUSTMENT,
                amount=initial_balance,
                balance_before=_ZERO,
                balance_after=initial_balance,
                description="Balance initialization",
                reference_id=balance.id,
                reference_type=ReferenceKind.BALANCE.value,
                notes="Initial balance configured",
                created_at=now,
            )
            self.session.add(transaction)
            self.session.flush()

        logger.info(
            "balance_initialized",
            extra={
                "balance_id": balance.id,
                "initial_balance": initial_balance,
                "low_balance_threshold": low_balance_threshold,
            },
        )
        return balance

    def update_low_balance_threshold(self, threshold: Decimal) -> Balance:
        """Change the alert threshold.

        Raises:
            InvalidAmountError: Negative threshold.
        """
        self._require_non_negative("low_balance_threshold", threshold)
        with self.session.begin_nested():
            balance = self._locked_balance()
            previous = balance.low_balance_threshold
            balance.low_balance_threshold = threshold
            balance.last_updated = self._clock.now()
            self.session.flush()

        logger.info(
            "low_balance_threshold_updated",
            extra={"previous_threshold": previous, "threshold": threshold},
        )
        return balance

    def has_sufficient_funds(self, amount: Decimal) -> bool:
        return self.get_current_balance().current_balance >= amount

    def is_low_balance(self) -> bool:
        balance = self.get_current_balance()
        return balance.current_balance < balance.low_balance_threshold

    def get_balance_difference(self) -> Decimal:
        """Current balance minus threshold; negative when below it."""
        balance = self.get_current_balance()
        return balance.current_balance - balance.low_balance_threshold

    # =========================================================================
    # Recording
    # =========================================================================

    def record_income(
        self,
        amount: Decimal,
        description: str,
        reference_id: int | None = None,
        reference_type: ReferenceKind | str | None = None,
        notes: str | None = None,
    ) -> LedgerResult:
        """Add ``amount`` to the balance and append an INCOME transaction."""
        return self._record(
            TransactionType.INCOME,
            amount,
            description,
            reference_id,
            reference_type,
            notes,
        )

    def record_expense(
        self,
        amount: Decimal,
        description: str,
        reference_id: int | None = None,
        reference_type: ReferenceKind | str | None = None,
        notes: str | None = None,
    ) -> LedgerResult:
        """Subtract ``amount`` from the balance and append an EXPENSE transaction.

        The balance may go negative; fund checks are the caller's concern.
        """
        return self._record(
            TransactionType.EXPENSE,
            amount,
            description,
            reference_id,
            reference_type,
            notes,
        )

    def record_salary_payment(
        self,
        amount: Decimal,
        payment_id: int,
        employee_name: str,
        notes: str | None = None,
    ) -> LedgerResult:
        """Record a disbursed salary as an expense referencing the payment."""
        return self.record_expense(
            amount,
            f"Salary payment - {employee_name}",
            payment_id,
            ReferenceKind.SALARY_PAYMENT,
            notes,
        )

    def _record(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference_id: int | None,
        reference_type: ReferenceKind | str | None,
        notes: str | None,
    ) -> LedgerResult:
        self._require_non_negative("amount", amount)
        reference_value = _reference_value(reference_type)
        now = self._clock.now()
        balance_before = _ZERO
        balance_after = apply_transaction(_ZERO, transaction_type, amount)

        try:
            with self.session.begin_nested():
                balance = self._locked_balance()
                balance_before = balance.current_balance
                balance_after = apply_transaction(balance_before, transaction_type, amount)

                transaction = LedgerTransaction(
                    transaction_type=transaction_type,
                    amount=amount,
                    balance_before=balance_before,
                    balance_after=balance_after,
                    description=description,
                    reference_id=reference_id,
                    reference_type=reference_value,
                    notes=notes,
                    created_at=now,
                )
                balance.current_balance = balance_after
                balance.last_updated = now
                self.session.add(transaction)
                self.session.flush()
        except SQLAlchemyError as exc:
            logger.warning(
                "ledger_recording_degraded",
                extra={
                    "transaction_type": transaction_type.value,
                    "amount": amount,
                    "reference_type": reference_value,
                    "reference_id": reference_id,
                },
                exc_info=True,
            )
            transient = LedgerTransaction(
                transaction_type=transaction_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
                description=description,
                reference_id=reference_id,
                reference_type=reference_value,
                notes=notes,
                created_at=now,
            )
            return LedgerResult.degraded(transient, str(exc))

        logger.info(
            "transaction_recorded",
            extra={
                "transaction_id": transaction.id,
                "transaction_type": transaction_type.value,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "reference_type": reference_value,
                "reference_id": reference_id,
            },
        )
        return LedgerResult.recorded(transaction)

    def adjust_balance(
        self,
        amount: Decimal,
        reason: str | None = None,
        notes: str | None = None,
    ) -> LedgerTransaction:
        """
        Apply a signed manual correction.

        The signed ``amount`` moves the balance, but the transaction stores
        ``abs(amount)``.  A replay treats every ADJUSTMENT as a credit, so a
        negative adjustment is replayed as positive.
        """
        now = self._clock.now()
        with self.session.begin_nested():
            balance = self._locked_balance()
            balance_before = balance.current_balance
            balance_after = balance_before + amount

            transaction = LedgerTransaction(
                transaction_type=TransactionType.ADJUSTMENT,
                amount=abs(amount),
                balance_before=balance_before,
                balance_after=balance_after,
                description=reason or "Manual balance adjustment",
                reference_id=None,
                reference_type=ReferenceKind.BALANCE.value,
                notes=notes,
                created_at=now,
            )
            balance.current_balance = balance_after
            balance.last_updated = now
            self.session.add(transaction)
            self.session.flush()

        if amount < 0:
            logger.warning(
                "negative_adjustment_recorded",
                extra={"transaction_id": transaction.id, "amount": amount},
            )
        logger.info(
            "balance_adjusted",
            extra={
                "transaction_id": transaction.id,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "reason": transaction.description,
            },
        )
        return transaction

    # =========================================================================
    # Deletion and recomputation
    # =========================================================================

    def delete_transaction(self, transaction_id: int) -> RecomputationResult:
        """
        Remove one transaction and replay the log.

        Raises:
            TransactionNotFoundError: Unknown id.
            RecomputationError: Replay failed; snapshots after the deleted
                row may be stale until recomputation succeeds.
        """
        with LogContext.bind(transaction_id=transaction_id):
            transaction = self.session.get(LedgerTransaction, transaction_id)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)

            logger.info(
                "transaction_deleting",
                extra={
                    "transaction_type": transaction.transaction_type,
                    "amount": transaction.amount,
                    "created_at": transaction.created_at,
                },
            )
            with self.session.begin_nested():
                self.session.delete(transaction)
                self.session.flush()

            result = self.recalculate_balance_from_all_transactions()

            logger.info(
                "transaction_deleted",
                extra={"final_balance": result.final_balance},
            )
            return result

    def recalculate_balance_from_all_transactions(self) -> RecomputationResult:
        """
        Replay the whole log in (created_at, id) order starting from zero.

        Snapshots are rewritten only where they differ.  With an empty log
        the balance is left as it is.

        Raises:
            RecomputationError: Any failure while replaying.
        """
        processed = 0
        try:
            with self.session.begin_nested():
                balance = self._locked_balance()
                previous_balance = balance.current_balance

                transactions = list(
                    self.session.execute(
                        select(LedgerTransaction).order_by(
                            LedgerTransaction.created_at,
                            LedgerTransaction.id,
                        )
                    ).scalars()
                )

                if not transactions:
                    logger.warning(
                        "recompute_skipped_empty_log",
                        extra={"current_balance": previous_balance},
                    )
                    return RecomputationResult(0, 0, previous_balance, previous_balance)

                running = _ZERO
                updated = 0
                for transaction in transactions:
                    before = running
                    running = apply_transaction(
                        running, transaction.transaction_type, transaction.amount
                    )
                    if (
                        transaction.balance_before != before
                        or transaction.balance_after != running
                    ):
                        transaction.balance_before = before
                        transaction.balance_after = running
                        updated += 1
                    processed += 1

                balance.current_balance = running
                balance.last_updated = self._clock.now()
                self.session.flush()
        except LedgerKernelError:
            raise
        except Exception as exc:
            logger.error(
                "recompute_failed",
                extra={"transactions_processed": processed},
                exc_info=True,
            )
            raise RecomputationError(str(exc), processed) from exc

        logger.info(
            "balance_recomputed",
            extra={
                "transactions_processed": processed,
                "transactions_updated": updated,
                "previous_balance": previous_balance,
                "final_balance": running,
            },
        )
        return RecomputationResult(processed, updated, previous_balance, running)

    # =========================================================================
    # Historical migration
    # =========================================================================

    def _referenced_ids(self, kind: ReferenceKind) -> set[int]:
        rows = self.session.execute(
            select(LedgerTransaction.reference_id).where(
                LedgerTransaction.reference_type == kind.value,
                LedgerTransaction.reference_id.is_not(None),
            )
        ).scalars()
        return set(rows)

    def _add_historical(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference: LedgerReference,
        notes: str,
        occurred_at: datetime,
    ) -> LedgerTransaction:
        # Snapshots are placeholders until the replay that follows
        transaction = LedgerTransaction(
            transaction_type=transaction_type,
            amount=amount,
            balance_before=_ZERO,
            balance_after=_ZERO,
            description=description,
            reference_id=reference.id,
            reference_type=reference.kind.value,
            notes=notes,
            created_at=occurred_at,
        )
        self.session.add(transaction)
        return transaction

    def migrate_historical_orders_and_deliveries(self) -> MigrationResult:
        """
        Backfill completed orders, deliveries and expenses into the log.

        Each source record gets at most one transaction, detected by its
        (reference_type, reference_id) pair, and is dated at its original
        timestamp.  Payroll-category expenses are skipped; payroll records
        its own transactions.  The log is replayed afterwards.

        Raises:
            MigrationError: Reading sources or inserting rows failed.
            RecomputationError: The replay after inserting failed.
        """
        logger.info("historical_migration_started")
        orders_migrated = deliveries_migrated = expenses_migrated = 0
        orders_revenue = deliveries_revenue = expenses_total = _ZERO

        with self.session.begin_nested():
            try:
                migrated_orders = self._referenced_ids(ReferenceKind.ORDER)
                orders = self.session.execute(
                    select(Order).where(Order.status.is_(True)).order_by(Order.id)
                ).scalars()
                for order in orders:
                    if order.id in migrated_orders:
                        continue
                    table = f" - table {order.table_number}" if order.table_number else ""
                    self._add_historical(
                        TransactionType.INCOME,
                        order.total_price,
                        f"Income from order #{order.id}{table} (historical migration)",
                        LedgerReference.order(order.id),
                        f"Order completed on {order.date} (migrated)",
                        order.occurred_at,
                    )
                    orders_revenue += order.total_price
                    orders_migrated += 1

                migrated_deliveries = self._referenced_ids(ReferenceKind.DELIVERY)
                deliveries = self.session.execute(
                    select(Delivery).where(Delivery.status.is_(True)).order_by(Delivery.id)
                ).scalars()
                for delivery in deliveries:
                    if delivery.id in migrated_deliveries:
                        continue
                    self._add_historical(
                        TransactionType.INCOME,
                        delivery.total_price,
                        f"Income from delivery #{delivery.id} (historical migration)",
                        LedgerReference.delivery(delivery.id),
                        f"Delivery completed on {delivery.date} - "
                        f"{delivery.delivery_address or 'no address'} (migrated)",
                        delivery.occurred_at,
                    )
                    deliveries_revenue += delivery.total_price
                    deliveries_migrated += 1

                migrated_expenses = self._referenced_ids(ReferenceKind.EXPENSE)
                expenses = self.session.execute(
                    select(Expense)
                    .where(Expense.category != self._settings.payroll_expense_category)
                    .order_by(Expense.id)
                ).scalars()
                for expense in expenses:
                    if expense.id in migrated_expenses:
                        continue
                    self._add_historical(
                        TransactionType.EXPENSE,
                        expense.amount,
                        f"Historical expense: {expense.category} - "
                        f"{expense.description} (migration)",
                        LedgerReference.expense(expense.id),
                        f"Expense of {expense.expense_date} - payment method: "
                        f"{expense.payment_method or 'not specified'} (migrated)",
                        datetime.combine(expense.expense_date, _EXPENSE_SOURCE_TIME),
                    )
                    expenses_total += expense.amount
                    expenses_migrated += 1

                self.session.flush()
            except SQLAlchemyError as exc:
                logger.error("historical_migration_failed", exc_info=True)
                raise MigrationError(str(exc)) from exc

        # Inserted rows stay in the caller's transaction if the replay fails
        recomputation = self.recalculate_balance_from_all_transactions()

        result = MigrationResult(
            orders_migrated=orders_migrated,
            deliveries_migrated=deliveries_migrated,
            expenses_migrated=expenses_migrated,
            total_orders_revenue=orders_revenue,
            total_deliveries_revenue=deliveries_revenue,
            total_expenses=expenses_total,
        )
        logger.info(
            "historical_migration_completed",
            extra={
                "orders_migrated": orders_migrated,
                "deliveries_migrated": deliveries_migrated,
                "expenses_migrated": expenses_migrated,
                "total_revenue": result.total_revenue,
                "total_expenses": expenses_total,
                "net_balance": result.net_balance,
                "final_balance": recomputation.final_balance,
            },
        )
        return result

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _require_non_negative(field: str, amount: Decimal | None) -> None:
        if amount is None:
            raise InvalidAmountError(field, amount, "amount is required")
        if amount < 0:
            raise InvalidAmountError(field, amount, "must not be negative")
