"""
Expense service -- expense entry and its ledger side effect.

Every non-payroll expense is mirrored into the ledger as an EXPENSE
transaction referencing the expense id.  Payroll-category expenses are
created by the payroll engine, which records its own ledger entry, so they
are never mirrored.

Ledger problems never block expense entry: a degraded or failed ledger write
is logged and the expense row is kept.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings, PayrollSettings
from ledger_kernel.domain.references import ReferenceKind
from ledger_kernel.exceptions import InvalidAmountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.employee import Employee
from ledger_kernel.models.expense import Expense
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService

logger = get_logger("services.expense")


class ExpenseService(BaseService[Expense]):
    def __init__(
        self,
        session: Session,
        ledger: LedgerService,
        settings: LedgerSettings | None = None,
        payroll_settings: PayrollSettings | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._settings = settings or LedgerSettings()
        self._payroll_settings = payroll_settings or PayrollSettings()

    @property
    def payroll_category(self) -> str:
        return self._settings.payroll_expense_category

    def create_expense(
        self,
        description: str,
        category: str,
        amount: Decimal,
        expense_date: date,
        payment_method: str | None = None,
        notes: str | None = None,
    ) -> Expense:
        """Create an expense and, unless it is payroll, its ledger entry."""
        if amount is None or amount < 0:
            raise InvalidAmountError("amount", amount, "must not be negative")

        expense = Expense(
            description=description,
            category=category,
            amount=amount,
            expense_date=expense_date,
            payment_method=payment_method,
            notes=notes,
        )
        self.session.add(expense)
        self.session.flush()

        if category != self.payroll_category:
            self._mirror_to_ledger(expense)

        logger.info(
            "expense_created",
            extra={
                "expense_id": expense.id,
                "category": category,
                "amount": amount,
            },
        )
        return expense

    def _mirror_to_ledger(self, expense: Expense) -> None:
        try:
            result = self._ledger.record_expense(
                expense.amount,
                expense.description,
                expense.id,
                ReferenceKind.EXPENSE,
                expense.notes,
            )
        except SQLAlchemyError:
            logger.warning(
                "expense_ledger_entry_failed",
                extra={"expense_id": expense.id},
                exc_info=True,
            )
            return

        if not result.is_durable:
            logger.warning(
                "expense_ledger_entry_degraded",
                extra={"expense_id": expense.id, "reason": result.message},
            )

    def create_salary_expense(
        self,
        employee: Employee,
        amount: Decimal,
        payment_date: date,
    ) -> Expense:
        """Book a disbursed salary as a payroll-category expense (no ledger entry)."""
        expense = Expense(
            description=f"Salary payment - {employee.full_name}",
            category=self.payroll_category,
            amount=amount,
            expense_date=payment_date,
            payment_method=self._payroll_settings.expense_payment_method,
            notes=f"Automatic salary payment for employee ID: {employee.id}",
        )
        self.session.add(expense)
        self.session.flush()

        logger.info(
            "salary_expense_created",
            extra={
                "expense_id": expense.id,
                "employee_id": employee.id,
                "amount": amount,
            },
        )
        return expense
