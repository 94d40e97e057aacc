"""
Module: ledger_kernel.selectors.payroll_selector
Responsibility: Read-only access to salary payments and alerts.
"""

from datetime import date

from sqlalchemy import select

from ledger_kernel.models.alert import Alert, AlertStatus
from ledger_kernel.models.salary_payment import PaymentStatus, SalaryPayment
from ledger_kernel.selectors.base import BaseSelector


class PayrollSelector(BaseSelector[SalaryPayment]):
    """Queries over salary payments and funding alerts."""

    def get_pending_payments(self) -> list[SalaryPayment]:
        """PENDING payments in retry order (oldest payment date first)."""
        stmt = (
            select(SalaryPayment)
            .where(SalaryPayment.status == PaymentStatus.PENDING.value)
            .order_by(SalaryPayment.payment_date, SalaryPayment.id)
        )
        return list(self.session.execute(stmt).scalars())

    def get_payments_by_employee(self, employee_id: int) -> list[SalaryPayment]:
        """Newest payment date first."""
        stmt = (
            select(SalaryPayment)
            .where(SalaryPayment.employee_id == employee_id)
            .order_by(SalaryPayment.payment_date.desc(), SalaryPayment.id.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def get_all_payments(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> list[SalaryPayment]:
        """Payments with start <= payment_date <= end; open bounds when None."""
        stmt = select(SalaryPayment)
        if start is not None:
            stmt = stmt.where(SalaryPayment.payment_date >= start)
        if end is not None:
            stmt = stmt.where(SalaryPayment.payment_date <= end)
        stmt = stmt.order_by(SalaryPayment.payment_date.desc(), SalaryPayment.id.desc())
        return list(self.session.execute(stmt).scalars())

    def get_active_alerts(self) -> list[Alert]:
        stmt = (
            select(Alert)
            .where(Alert.status == AlertStatus.ACTIVE.value)
            .order_by(Alert.created_at.desc(), Alert.id.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def get_all_alerts(self) -> list[Alert]:
        stmt = select(Alert).order_by(Alert.created_at.desc(), Alert.id.desc())
        return list(self.session.execute(stmt).scalars())
