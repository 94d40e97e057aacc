"""
Module: ledger_kernel.models.alert
Responsibility: ORM persistence for funding alerts.
Architecture position: Kernel > Models.

Invariants enforced:
    - BALANCE_THRESHOLD and PENDING_PAYMENTS: at most one ACTIVE alert per
      type (deduplicated by AlertService before insert).
    - LOW_BALANCE: one alert per failed disbursement, never deduplicated.
    - ACTIVE -> RESOLVED only through an explicit resolve; resolved_at is set
      on that transition.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class AlertType(str, Enum):
    LOW_BALANCE = "LOW_BALANCE"
    BALANCE_THRESHOLD = "BALANCE_THRESHOLD"
    PENDING_PAYMENTS = "PENDING_PAYMENTS"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Alert(Base):
    """A user-visible signal of a funding problem."""

    __tablename__ = "alerts"

    __table_args__ = (
        Index("idx_alerts_type_status", "alert_type", "status"),
    )

    alert_type: Mapped[AlertType] = mapped_column(String(30), nullable=False)

    status: Mapped[AlertStatus] = mapped_column(
        String(10),
        default=AlertStatus.ACTIVE,
        nullable=False,
    )

    message: Mapped[str] = mapped_column(String(1000), nullable=False)

    severity: Mapped[AlertSeverity] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Alert {self.id} {self.alert_type} {self.status}>"
