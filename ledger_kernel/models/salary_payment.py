"""
Module: ledger_kernel.models.salary_payment
Responsibility: ORM persistence for salary disbursement attempts.
Architecture position: Kernel > Models.

State machine:
    PENDING -> PAID     funds sufficient and every recording step succeeded
    PENDING -> FAILED   unexpected error while recording
    Insufficient funds leaves the payment PENDING; the scheduler retries it.

Invariants enforced:
    - At most one payment per (employee, payment_date), enforced by a unique
      constraint; concurrent payroll runs lose the insert and skip.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, IdType
from ledger_kernel.domain.payroll_calendar import PaymentFrequency

if TYPE_CHECKING:
    from ledger_kernel.models.employee import Employee


class PaymentStatus(str, Enum):
    """Lifecycle status of a salary payment."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class SalaryPayment(Base):
    """One disbursement attempt for one employee and one pay period."""

    __tablename__ = "salary_payments"

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "payment_date", name="uq_salary_payments_employee_date"
        ),
        Index("idx_salary_payments_status_date", "status", "payment_date"),
    )

    employee_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("employees.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_date: Mapped[date] = mapped_column(nullable=False)

    period_start_date: Mapped[date] = mapped_column(nullable=False)

    period_end_date: Mapped[date] = mapped_column(nullable=False)

    payment_frequency: Mapped[PaymentFrequency] = mapped_column(
        String(10),
        nullable=False,
    )

    status: Mapped[PaymentStatus] = mapped_column(
        String(10),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    employee: Mapped["Employee"] = relationship(back_populates="salary_payments")

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    def __repr__(self) -> str:
        return (
            f"<SalaryPayment {self.id} employee={self.employee_id} "
            f"{self.amount} {self.payment_date} {self.status}>"
        )
