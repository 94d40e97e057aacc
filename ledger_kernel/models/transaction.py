"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for the append-only transaction log.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure value types in domain/references.py.

Invariants enforced:
    - amount is a non-negative magnitude; the sign comes from transaction_type.
    - balance_after == apply(balance_before, transaction) for every row once
      the log has been recomputed.
    - Rows are never mutated except by recomputation, which rewrites only
      balance_before/balance_after.  Deletion is an explicit admin action and
      is always followed by recomputation.
    - (reference_type, reference_id) is a loose pair, not a foreign key.

Failure modes:
    - None at the ORM level; validation lives in LedgerService.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.domain.references import LedgerReference, ReferenceKind


class TransactionType(str, Enum):
    """Kind of balance-affecting event.

    Contract: INCOME, ADJUSTMENT and REFUND add to the balance; EXPENSE and
    SALARY_PAYMENT subtract from it.
    """

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    SALARY_PAYMENT = "SALARY_PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    REFUND = "REFUND"

    @property
    def is_credit(self) -> bool:
        return self in _CREDIT_TYPES


_CREDIT_TYPES = frozenset(
    {TransactionType.INCOME, TransactionType.ADJUSTMENT, TransactionType.REFUND}
)


def apply_transaction(
    balance: Decimal,
    transaction_type: TransactionType | str,
    amount: Decimal,
) -> Decimal:
    """Return ``balance`` after applying one transaction of the given type."""
    if TransactionType(transaction_type).is_credit:
        return balance + amount
    return balance - amount


class LedgerTransaction(Base):
    """
    One balance-affecting event with before/after snapshots.

    Non-goals:
        - Does not enforce the snapshot invariant itself; LedgerService
          computes the snapshots and recomputation repairs them.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_created_at", "created_at", "id"),
        Index("idx_transactions_reference", "reference_type", "reference_id"),
        Index("idx_transactions_type", "transaction_type"),
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(20),
        nullable=False,
    )

    # Non-negative magnitude
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    balance_before: Mapped[Decimal] = mapped_column(nullable=False)

    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    @property
    def reference(self) -> LedgerReference | None:
        if self.reference_type is None:
            return None
        return LedgerReference(ReferenceKind(self.reference_type), self.reference_id)

    @property
    def signed_amount(self) -> Decimal:
        if TransactionType(self.transaction_type).is_credit:
            return self.amount
        return -self.amount

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.id} {self.transaction_type} "
            f"{self.amount}: {self.balance_before} -> {self.balance_after}>"
        )
