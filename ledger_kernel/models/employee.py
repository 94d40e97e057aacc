"""
Module: ledger_kernel.models.employee
Responsibility: Payroll-relevant view of an employee.
Architecture position: Kernel > Models.

Identity and credentials belong to the staff-management side of the back
office; only the columns payroll needs are mapped here.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base
from ledger_kernel.domain.payroll_calendar import PaymentFrequency

if TYPE_CHECKING:
    from ledger_kernel.models.salary_payment import SalaryPayment


class Employee(Base):
    """
    An employee who may be paid by the payroll engine.

    An employee is payroll-active only when salary, payment_frequency and
    payment_day are all set.
    """

    __tablename__ = "employees"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Monthly salary
    salary: Mapped[Decimal | None] = mapped_column(nullable=True)

    payment_frequency: Mapped[PaymentFrequency | None] = mapped_column(
        String(10),
        nullable=True,
    )

    # 1..31, clamped to the month length when paying
    payment_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    salary_payments: Mapped[list["SalaryPayment"]] = relationship(
        back_populates="employee",
    )

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name}"

    @property
    def is_payroll_active(self) -> bool:
        return (
            self.salary is not None
            and self.payment_frequency is not None
            and self.payment_day is not None
        )

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.full_name}>"
