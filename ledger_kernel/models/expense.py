"""
Module: ledger_kernel.models.expense
Responsibility: Business expenses entered by staff or created by payroll.
Architecture position: Kernel > Models.

Expenses in the payroll category are created by the payroll engine alongside
its own SALARY_PAYMENT ledger entry and therefore never get an EXPENSE
ledger entry of their own.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class Expense(Base):
    __tablename__ = "expenses"

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str] = mapped_column(String(100), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    expense_date: Mapped[date] = mapped_column(nullable=False)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.category} {self.amount}>"
