"""
Pytest fixtures for the ledger test suite.

Provides:
- A file-backed SQLite database per test (SAVEPOINT-capable)
- Kernel services wired to a DeterministicClock and a recording notifier
- Structured log capture
- Small factories for employees, orders, deliveries and expenses

SQLite stands in for PostgreSQL here.  Row locks (FOR UPDATE) are a no-op on
SQLite; concurrency behaviour is not exercised by this suite.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledger_config.schema import LedgerSettings, PayrollSettings
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import enable_sqlite_savepoints
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.payroll_calendar import PaymentFrequency
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models import Delivery, Employee, Expense, Order
from ledger_kernel.services.alert_service import AlertService
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification import render_template
from ledger_kernel.services.payroll_service import PayrollService
from ledger_kernel.services.sales_service import SalesService


ADMIN_EMAIL = "admin@example.com"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_income(Decimal("10"), "tip")
            logs = captured_logs()
            assert any(r["message"] == "transaction_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def clock():
    # Naive local time, as the ledger stores it
    return DeterministicClock(fixed_time=datetime(2024, 1, 15, 9, 0, 0))


# =============================================================================
# Notification fixtures
# =============================================================================


class RecordingNotifier:
    """Renders and keeps every notification instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    def send_templated_notification(self, recipient, subject, template, variables):
        body = render_template(template, variables)
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.sent.append(
            {
                "recipient": recipient,
                "subject": subject,
                "template": template,
                "variables": variables,
                "body": body,
            }
        )

    def templates(self) -> list[str]:
        return [n["template"] for n in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def ledger_settings():
    return LedgerSettings(default_low_balance_threshold=Decimal("100.00"))


@pytest.fixture
def payroll_settings():
    return PayrollSettings()


@pytest.fixture
def ledger(session, clock, ledger_settings):
    return LedgerService(session, clock, ledger_settings)


@pytest.fixture
def alerts(session, ledger, notifier, clock):
    return AlertService(session, ledger, notifier, clock, admin_email=ADMIN_EMAIL)


@pytest.fixture
def expenses(session, ledger, ledger_settings, payroll_settings):
    return ExpenseService(session, ledger, ledger_settings, payroll_settings)


@pytest.fixture
def payroll(session, ledger, alerts, expenses, notifier, clock, payroll_settings):
    return PayrollService(
        session, ledger, alerts, expenses, notifier, clock, payroll_settings
    )


@pytest.fixture
def sales(session, ledger):
    return SalesService(session, ledger)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_employee(session):
    def _make(
        name: str = "Ana",
        last_name: str = "Pérez",
        salary: Decimal | None = Decimal("1000.00"),
        frequency: PaymentFrequency | None = PaymentFrequency.MONTHLY,
        payment_day: int | None = 15,
        email: str | None = "ana@example.com",
    ) -> Employee:
        employee = Employee(
            name=name,
            last_name=last_name,
            email=email,
            salary=salary,
            payment_frequency=frequency,
            payment_day=payment_day,
        )
        session.add(employee)
        session.flush()
        return employee

    return _make


@pytest.fixture
def make_order(session):
    def _make(
        total: Decimal,
        on: date = date(2023, 12, 1),
        completed: bool = True,
        table_number: int | None = 4,
        at=None,
    ) -> Order:
        order = Order(
            total_price=total,
            date=on,
            time=at,
            status=completed,
            table_number=table_number,
        )
        session.add(order)
        session.flush()
        return order

    return _make


@pytest.fixture
def make_delivery(session):
    def _make(
        total: Decimal,
        on: date = date(2023, 12, 1),
        completed: bool = True,
        address: str | None = "Calle 1",
        at=None,
    ) -> Delivery:
        delivery = Delivery(
            total_price=total,
            date=on,
            time=at,
            status=completed,
            delivery_address=address,
        )
        session.add(delivery)
        session.flush()
        return delivery

    return _make


@pytest.fixture
def make_expense(session):
    def _make(
        amount: Decimal,
        category: str = "Insumos",
        on: date = date(2023, 12, 2),
        description: str = "Vegetables",
    ) -> Expense:
        expense = Expense(
            description=description,
            category=category,
            amount=amount,
            expense_date=on,
            payment_method="Efectivo",
        )
        session.add(expense)
        session.flush()
        return expense

    return _make
