"""ORM models for the ledger kernel."""

from ledger_kernel.models.alert import Alert, AlertSeverity, AlertStatus, AlertType
from ledger_kernel.models.balance import Balance
from ledger_kernel.models.employee import Employee
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.salary_payment import PaymentStatus, SalaryPayment
from ledger_kernel.models.sales import Delivery, Order
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionType,
    apply_transaction,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "Balance",
    "Delivery",
    "Employee",
    "Expense",
    "LedgerTransaction",
    "Order",
    "PaymentStatus",
    "SalaryPayment",
    "TransactionType",
    "apply_transaction",
]
