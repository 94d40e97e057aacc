"""
Payroll calendar -- pure due-date, period and amount rules.

Responsibility:
    Decides whether an employee is due to be paid on a given date, which
    period the payment covers, and how much it is for.  No I/O; the payroll
    service feeds it the employee's configuration and the clock's date.

Rules:
    - Adjusted payment day = min(configured day, days in the current month),
      so day 31 falls on Feb 28 (or 29) and on the 30th in 30-day months.
    - MONTHLY pays the whole previous calendar month.
    - BIWEEKLY on or before the 15th pays the 16th through the end of the
      previous month; after the 15th it pays the 1st through the 15th of the
      current month.
    - MONTHLY amount is the full salary; BIWEEKLY is salary / 2 rounded
      half-up to two decimals.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

_CENTS = Decimal("0.01")


class PaymentFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    BIWEEKLY = "BIWEEKLY"


@dataclass(frozen=True)
class PayPeriod:
    """The dates a salary payment covers, inclusive on both ends."""

    start: date
    end: date

    def format(self, pattern: str = "%d/%m/%Y") -> str:
        return f"{self.start.strftime(pattern)} to {self.end.strftime(pattern)}"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def adjusted_payment_day(payment_day: int, today: date) -> int:
    """Clamp a configured payment day to the length of today's month."""
    return min(payment_day, days_in_month(today.year, today.month))


def is_payment_day(payment_day: int, today: date) -> bool:
    return today.day == adjusted_payment_day(payment_day, today)


def _previous_month(today: date) -> tuple[int, int]:
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def pay_period(frequency: PaymentFrequency, today: date) -> PayPeriod:
    """Period covered by a payment made on ``today``."""
    prev_year, prev_month = _previous_month(today)
    prev_last = date(prev_year, prev_month, days_in_month(prev_year, prev_month))

    if frequency == PaymentFrequency.MONTHLY:
        return PayPeriod(date(prev_year, prev_month, 1), prev_last)

    if today.day <= 15:
        return PayPeriod(date(prev_year, prev_month, 16), prev_last)
    return PayPeriod(
        date(today.year, today.month, 1),
        date(today.year, today.month, 15),
    )


def payment_amount(salary: Decimal, frequency: PaymentFrequency) -> Decimal:
    """Amount disbursed per payment for a monthly ``salary``."""
    if frequency == PaymentFrequency.BIWEEKLY:
        return (salary / Decimal(2)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return salary


def due_period(
    payment_day: int,
    frequency: PaymentFrequency,
    today: date,
) -> PayPeriod | None:
    """Pay period due today, or None if today is not the payment day."""
    if not is_payment_day(payment_day, today):
        return None
    return pay_period(frequency, today)
