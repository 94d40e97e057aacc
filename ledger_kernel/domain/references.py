"""
LedgerReference -- the loose link from a ledger entry to its source record.

A transaction points at the business record that caused it (an order, a
delivery, an expense, a salary payment, or the balance itself) through a
``(reference_type, reference_id)`` pair.  There is no foreign key: source
records may be deleted or may live in another service, and the ledger must
keep its history regardless.

The pair is also the idempotence key for historical migration: a source
record is migrated at most once, detected by looking up its reference.
"""

from dataclasses import dataclass
from enum import Enum


class ReferenceKind(str, Enum):
    """Kind of business record a ledger entry refers to."""

    ORDER = "ORDER"
    DELIVERY = "DELIVERY"
    EXPENSE = "EXPENSE"
    SALARY_PAYMENT = "SALARY_PAYMENT"
    BALANCE = "BALANCE"


@dataclass(frozen=True)
class LedgerReference:
    """Immutable (kind, id) pair identifying a source record."""

    kind: ReferenceKind
    id: int | None = None

    @classmethod
    def order(cls, order_id: int) -> "LedgerReference":
        return cls(ReferenceKind.ORDER, order_id)

    @classmethod
    def delivery(cls, delivery_id: int) -> "LedgerReference":
        return cls(ReferenceKind.DELIVERY, delivery_id)

    @classmethod
    def expense(cls, expense_id: int) -> "LedgerReference":
        return cls(ReferenceKind.EXPENSE, expense_id)

    @classmethod
    def salary_payment(cls, payment_id: int) -> "LedgerReference":
        return cls(ReferenceKind.SALARY_PAYMENT, payment_id)

    @classmethod
    def balance(cls) -> "LedgerReference":
        return cls(ReferenceKind.BALANCE, None)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"
