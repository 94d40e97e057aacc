"""
Typed exception hierarchy for the ledger kernel.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, API-safe), and carries its context as
attributes rather than only inside the message string.

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- BalanceAlreadyInitializedError
    |   +-- InvalidAmountError
    |
    +-- NotFoundError
    |   +-- TransactionNotFoundError
    |   +-- AlertNotFoundError
    |   +-- SalaryPaymentNotFoundError
    |   +-- OrderNotFoundError
    |   +-- DeliveryNotFoundError
    |
    +-- RecomputationError
    +-- MigrationError
    +-- NotificationError

Insufficient funds is deliberately absent: a disbursement that cannot be
covered becomes a PENDING salary payment plus a LOW_BALANCE alert, and is
retried by the scheduler.  Transient storage failures while recording income
or expenses are reported through ``LedgerResult`` with a DEGRADED status,
not raised.

Handling pattern::

    try:
        ledger.delete_transaction(transaction_id)
    except TransactionNotFoundError as e:
        return {"error": e.code, "transaction_id": e.transaction_id}
    except RecomputationError as e:
        # Ledger snapshots may be stale until recomputation succeeds
        log.error("recompute failed", extra={"code": e.code})
        raise
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Input rejected before any state change. Not retried."""

    code: str = "VALIDATION_ERROR"


class BalanceAlreadyInitializedError(ValidationError):
    """A balance record already exists; initialization is one-shot."""

    code: str = "BALANCE_ALREADY_INITIALIZED"

    def __init__(self, balance_id: int | None, current_balance: Decimal):
        self.balance_id = balance_id
        self.current_balance = current_balance
        super().__init__(
            f"Balance already initialized (id={balance_id}, "
            f"current={current_balance}); use adjust_balance instead"
        )


class InvalidAmountError(ValidationError):
    """Monetary amount is not acceptable for the requested operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal | None, reason: str):
        self.field = field
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}")


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class AlertNotFoundError(NotFoundError):
    code: str = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: int):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


class SalaryPaymentNotFoundError(NotFoundError):
    code: str = "SALARY_PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Salary payment not found: {payment_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class DeliveryNotFoundError(NotFoundError):
    code: str = "DELIVERY_NOT_FOUND"

    def __init__(self, delivery_id: int):
        self.delivery_id = delivery_id
        super().__init__(f"Delivery not found: {delivery_id}")


# Reconciliation


class RecomputationError(LedgerKernelError):
    """
    Chronological replay of the transaction log failed.

    Fatal to the triggering operation (migration or deletion).  Work done
    before the failure is not rolled back automatically by the kernel; the
    caller's transaction decides.  Recomputation must be re-run to restore
    consistent snapshots.
    """

    code: str = "RECOMPUTATION_FAILED"

    def __init__(self, reason: str, transactions_processed: int = 0):
        self.reason = reason
        self.transactions_processed = transactions_processed
        super().__init__(
            f"Balance recomputation failed after {transactions_processed} "
            f"transaction(s): {reason}"
        )


class MigrationError(LedgerKernelError):
    """Historical backfill could not complete."""

    code: str = "MIGRATION_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Historical migration failed: {reason}")


class NotificationError(LedgerKernelError):
    """Notification collaborator could not deliver a message."""

    code: str = "NOTIFICATION_FAILED"

    def __init__(self, recipient: str, template: str, reason: str):
        self.recipient = recipient
        self.template = template
        self.reason = reason
        super().__init__(
            f"Notification '{template}' to {recipient} failed: {reason}"
        )
