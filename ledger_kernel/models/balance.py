"""
Module: ledger_kernel.models.balance
Responsibility: ORM persistence for the running balance singleton.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - current_balance equals the chronological replay of the transaction log
      (restored by LedgerService.recalculate_balance_from_all_transactions).
    - At most one row is ever created; it is never deleted.  The ledger
      service reads it with SELECT ... FOR UPDATE before every mutation.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class Balance(Base):
    """
    Running monetary balance of the business plus its alert threshold.

    Guarantees:
        - last_updated is set by the ledger service on every mutation.
        - low_balance_threshold is admin-configurable and never negative.
    """

    __tablename__ = "balance"

    current_balance: Mapped[Decimal] = mapped_column(nullable=False)

    low_balance_threshold: Mapped[Decimal] = mapped_column(nullable=False)

    last_updated: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def is_low(self) -> bool:
        return self.current_balance < self.low_balance_threshold

    def __repr__(self) -> str:
        return (
            f"<Balance {self.current_balance} "
            f"(threshold {self.low_balance_threshold})>"
        )
