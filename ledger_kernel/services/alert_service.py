"""
Alert service -- funding alerts and admin notification.

Alert types:
    LOW_BALANCE        one per failed disbursement, never deduplicated
    BALANCE_THRESHOLD  balance below the configured threshold
    PENDING_PAYMENTS   salary payments waiting for funds

BALANCE_THRESHOLD and PENDING_PAYMENTS are deduplicated: while an ACTIVE
alert of the type exists no new one is created, so repeated scheduler ticks
do not spam the admin.  Alerts leave ACTIVE only through ``resolve_alert``.

Notification failures are logged and swallowed; an alert row is created
whether or not the email went out.
"""

from decimal import Decimal

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AlertNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.alert import Alert, AlertSeverity, AlertStatus, AlertType
from ledger_kernel.models.salary_payment import PaymentStatus, SalaryPayment
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification import (
    LoggingNotifier,
    Notifier,
    deliver_safely,
)

logger = get_logger("services.alert")

DEFAULT_ADMIN_EMAIL = "admin@restaurante.com"


class AlertService(BaseService[Alert]):
    """Raises, deduplicates and resolves funding alerts."""

    def __init__(
        self,
        session: Session,
        ledger: LedgerService,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        admin_email: str = DEFAULT_ADMIN_EMAIL,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._admin_email = admin_email or DEFAULT_ADMIN_EMAIL

    def _create(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
    ) -> Alert:
        alert = Alert(
            alert_type=alert_type,
            status=AlertStatus.ACTIVE,
            severity=severity,
            message=message,
            created_at=self._clock.now(),
        )
        self.session.add(alert)
        self.session.flush()
        logger.warning(
            "alert_raised",
            extra={
                "alert_id": alert.id,
                "alert_type": alert_type.value,
                "severity": severity.value,
                "alert_message": message,
            },
        )
        return alert

    def has_active_alert(self, alert_type: AlertType) -> bool:
        return self.session.execute(
            select(
                exists().where(
                    Alert.alert_type == alert_type.value,
                    Alert.status == AlertStatus.ACTIVE.value,
                )
            )
        ).scalar()

    def send_low_balance_alert(
        self,
        required_amount: Decimal,
        current_balance: Decimal,
    ) -> Alert:
        """Raise a LOW_BALANCE alert for one disbursement that could not be covered."""
        message = (
            "Insufficient funds to process payment. "
            f"Required amount: {required_amount}, "
            f"available balance: {current_balance}"
        )
        alert = self._create(AlertType.LOW_BALANCE, AlertSeverity.HIGH, message)

        deliver_safely(
            self._notifier,
            self._admin_email,
            "Alert: insufficient funds",
            "low_balance_alert",
            {
                "required_amount": required_amount,
                "current_balance": current_balance,
                "shortfall": required_amount - current_balance,
                "message": message,
                "created_at": alert.created_at,
            },
        )
        return alert

    def send_balance_threshold_alert(
        self,
        current_balance: Decimal,
        threshold: Decimal,
    ) -> Alert:
        """Raise a BALANCE_THRESHOLD alert without checking for duplicates."""
        message = (
            "The business balance is below the configured threshold. "
            f"Current balance: {current_balance}, threshold: {threshold}"
        )
        alert = self._create(AlertType.BALANCE_THRESHOLD, AlertSeverity.MEDIUM, message)

        deliver_safely(
            self._notifier,
            self._admin_email,
            "Alert: balance below threshold",
            "balance_threshold_alert",
            {
                "current_balance": current_balance,
                "threshold": threshold,
                "difference": current_balance - threshold,
                "created_at": alert.created_at,
            },
        )
        return alert

    def send_pending_payments_alert(self, pending: list[SalaryPayment]) -> Alert:
        """Raise a PENDING_PAYMENTS alert without checking for duplicates."""
        total = sum((p.amount for p in pending), Decimal("0"))
        message = (
            f"There are {len(pending)} salary payment(s) pending for lack of "
            f"funds, totalling {total}. Please top up the business balance."
        )
        alert = self._create(AlertType.PENDING_PAYMENTS, AlertSeverity.HIGH, message)

        deliver_safely(
            self._notifier,
            self._admin_email,
            "Alert: pending salary payments",
            "pending_payments_alert",
            {
                "pending_count": len(pending),
                "pending_total": total,
                "payments": [
                    {
                        "id": p.id,
                        "employee": p.employee.full_name,
                        "amount": p.amount,
                        "payment_date": p.payment_date,
                    }
                    for p in pending
                ],
                "created_at": alert.created_at,
            },
        )
        return alert

    def check_and_create_alerts(self) -> list[Alert]:
        """
        Evaluate standing conditions and raise deduplicated alerts.

        Returns:
            The alerts created by this call (empty when nothing changed).
        """
        created: list[Alert] = []

        balance = self._ledger.get_current_balance()
        if balance.current_balance < balance.low_balance_threshold:
            if self.has_active_alert(AlertType.BALANCE_THRESHOLD):
                logger.debug(
                    "alert_deduplicated",
                    extra={"alert_type": AlertType.BALANCE_THRESHOLD.value},
                )
            else:
                created.append(
                    self.send_balance_threshold_alert(
                        balance.current_balance, balance.low_balance_threshold
                    )
                )

        pending = list(
            self.session.execute(
                select(SalaryPayment)
                .where(SalaryPayment.status == PaymentStatus.PENDING.value)
                .order_by(SalaryPayment.payment_date, SalaryPayment.id)
            ).scalars()
        )
        if pending:
            if self.has_active_alert(AlertType.PENDING_PAYMENTS):
                logger.debug(
                    "alert_deduplicated",
                    extra={"alert_type": AlertType.PENDING_PAYMENTS.value},
                )
            else:
                created.append(self.send_pending_payments_alert(pending))

        logger.info("alerts_checked", extra={"alerts_created": len(created)})
        return created

    def resolve_alert(self, alert_id: int) -> Alert:
        """
        Mark an alert RESOLVED.

        Raises:
            AlertNotFoundError: Unknown id.
        """
        alert = self.session.get(Alert, alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)

        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = self._clock.now()
        self.session.flush()

        logger.info(
            "alert_resolved",
            extra={"alert_id": alert.id, "alert_type": alert.alert_type},
        )
        return alert
