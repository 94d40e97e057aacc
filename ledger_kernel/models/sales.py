"""
Module: ledger_kernel.models.sales
Responsibility: Minimal fulfillment records the ledger reads income from.
Architecture position: Kernel > Models.

Menu items, line items and customers are owned by the ordering side of the
back office.  The ledger only needs the total, when it happened, and
whether it is completed.
"""

import datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, Date, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base

# Source timestamp used when a record has no time of day
DEFAULT_SOURCE_TIME = dt.time(12, 0)


class _FulfillmentMixin:
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)

    # True once completed
    status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def occurred_at(self) -> dt.datetime:
        """Original timestamp of the record, noon when time is unknown."""
        return dt.datetime.combine(self.date, self.time or DEFAULT_SOURCE_TIME)


class Order(_FulfillmentMixin, Base):
    """Dine-in order."""

    __tablename__ = "orders"

    table_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.total_price} completed={self.status}>"


class Delivery(_FulfillmentMixin, Base):
    """Delivery order."""

    __tablename__ = "deliveries"

    delivery_address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Delivery {self.id} {self.total_price} completed={self.status}>"
