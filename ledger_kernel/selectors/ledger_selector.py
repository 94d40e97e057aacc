"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only access to the transaction log for admin screens,
    reports and exports.

Ordering:
    Listing methods return newest first ((created_at, id) descending), the
    order admin screens show.  Replay order is the reverse and is owned by
    LedgerService.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from ledger_kernel.domain.references import LedgerReference
from ledger_kernel.models.transaction import LedgerTransaction, TransactionType
from ledger_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerSummary:
    """Totals per transaction type over a time window."""

    start: datetime | None
    end: datetime | None
    totals: dict[TransactionType, Decimal] = field(default_factory=dict)
    counts: dict[TransactionType, int] = field(default_factory=dict)

    def total(self, transaction_type: TransactionType) -> Decimal:
        return self.totals.get(transaction_type, _ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (v for k, v in self.totals.items() if k.is_credit),
            _ZERO,
        )

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (v for k, v in self.totals.items() if not k.is_credit),
            _ZERO,
        )

    @property
    def net(self) -> Decimal:
        return self.total_credits - self.total_debits


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """Queries over the transaction log."""

    def _newest_first(self, stmt):
        return stmt.order_by(
            LedgerTransaction.created_at.desc(),
            LedgerTransaction.id.desc(),
        )

    def get_all_transactions(self) -> list[LedgerTransaction]:
        stmt = self._newest_first(select(LedgerTransaction))
        return list(self.session.execute(stmt).scalars())

    def get_transactions_by_type(
        self,
        transaction_type: TransactionType,
    ) -> list[LedgerTransaction]:
        stmt = self._newest_first(
            select(LedgerTransaction).where(
                LedgerTransaction.transaction_type == TransactionType(transaction_type).value
            )
        )
        return list(self.session.execute(stmt).scalars())

    def get_transactions_between_dates(
        self,
        start: datetime,
        end: datetime,
    ) -> list[LedgerTransaction]:
        """Transactions with start <= created_at <= end."""
        stmt = self._newest_first(
            select(LedgerTransaction).where(
                LedgerTransaction.created_at >= start,
                LedgerTransaction.created_at <= end,
            )
        )
        return list(self.session.execute(stmt).scalars())

    def get_transactions_by_reference(
        self,
        reference: LedgerReference,
    ) -> list[LedgerTransaction]:
        conditions = [LedgerTransaction.reference_type == reference.kind.value]
        if reference.id is None:
            conditions.append(LedgerTransaction.reference_id.is_(None))
        else:
            conditions.append(LedgerTransaction.reference_id == reference.id)
        stmt = self._newest_first(select(LedgerTransaction).where(*conditions))
        return list(self.session.execute(stmt).scalars())

    def summarize(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> LedgerSummary:
        """Sum amounts per type, optionally within [start, end]."""
        stmt = select(
            LedgerTransaction.transaction_type,
            func.coalesce(func.sum(LedgerTransaction.amount), 0),
            func.count(LedgerTransaction.id),
        ).group_by(LedgerTransaction.transaction_type)
        if start is not None:
            stmt = stmt.where(LedgerTransaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(LedgerTransaction.created_at <= end)

        totals: dict[TransactionType, Decimal] = {}
        counts: dict[TransactionType, int] = {}
        for transaction_type, amount, count in self.session.execute(stmt):
            kind = TransactionType(transaction_type)
            totals[kind] = Decimal(str(amount))
            counts[kind] = count

        return LedgerSummary(start=start, end=end, totals=totals, counts=counts)
