"""
Operator commands.

Usage:
    python -m scripts.cli.main [--config FILE] [--db-url URL] <command> [options]

Commands:
    init-db              create all tables
    initialize-balance   record the opening capital (--amount, --threshold)
    balance              show the current balance and threshold
    set-threshold        change the low balance threshold (--threshold)
    adjust-balance       apply a signed manual correction (--amount, --reason)
    delete-transaction   remove one transaction by id and replay the log
    alerts               list active alerts
    resolve-alert        mark one alert resolved by id
    transactions         list the most recent transactions (--limit)
    migrate              import completed orders, deliveries and expenses
    recalculate          rebuild the balance by replaying every transaction
    run-payroll          run the payroll cycle once
    process-pending      retry pending salary payments once
    check-alerts         evaluate balance and pending-payment alerts
    scheduler            run the scheduler in the foreground until Ctrl-C
"""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal, InvalidOperation

from scripts.cli.util import enable_quiet_logging, fmt_amount, restore_logging


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a decimal amount: {value!r}") from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.cli.main",
        description="Restaurant ledger and payroll operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Override YAML (default: RESTAURANT_LEDGER_CONFIG env or packaged defaults).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: DATABASE_URL env or configured url).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create all tables.")

    init_balance = commands.add_parser("initialize-balance", help="Record opening capital.")
    init_balance.add_argument("--amount", type=_decimal, required=True)
    init_balance.add_argument(
        "--threshold",
        type=_decimal,
        default=None,
        help="Low balance threshold (default: configured default).",
    )

    commands.add_parser("balance", help="Show the current balance.")

    set_threshold = commands.add_parser("set-threshold", help="Change the low balance threshold.")
    set_threshold.add_argument("--threshold", type=_decimal, required=True)

    adjust = commands.add_parser("adjust-balance", help="Apply a signed manual correction.")
    adjust.add_argument("--amount", type=_decimal, required=True)
    adjust.add_argument("--reason", default=None)
    adjust.add_argument("--notes", default=None)

    delete = commands.add_parser("delete-transaction", help="Remove a transaction and replay.")
    delete.add_argument("transaction_id", type=int)

    commands.add_parser("alerts", help="List active alerts.")
    resolve = commands.add_parser("resolve-alert", help="Mark an alert resolved.")
    resolve.add_argument("alert_id", type=int)

    transactions = commands.add_parser("transactions", help="List recent transactions.")
    transactions.add_argument("--limit", type=int, default=20)

    commands.add_parser("migrate", help="Import historical orders, deliveries and expenses.")
    commands.add_parser("recalculate", help="Rebuild the balance from the transaction log.")
    commands.add_parser("run-payroll", help="Run the payroll cycle once.")
    commands.add_parser("process-pending", help="Retry pending salary payments once.")
    commands.add_parser("check-alerts", help="Evaluate funding alerts once.")
    commands.add_parser("scheduler", help="Run the scheduler until interrupted.")
    return parser


# =============================================================================
# Commands
# =============================================================================


def _cmd_init_db(settings) -> int:
    from ledger_kernel.db.engine import create_tables

    create_tables()
    print("  Tables created.")
    return 0


def _cmd_initialize_balance(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import ValidationError
    from ledger_batch.jobs import build_services

    threshold = args.threshold
    if threshold is None:
        threshold = settings.ledger.default_low_balance_threshold

    try:
        with session_scope() as session:
            ledger = build_services(session, settings).ledger
            balance = ledger.initialize_balance(args.amount, threshold)
            print(
                f"  Balance initialized: {fmt_amount(balance.current_balance)} "
                f"(threshold {fmt_amount(balance.low_balance_threshold)})"
            )
    except ValidationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


def _cmd_balance(settings) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_batch.jobs import build_services

    with session_scope() as session:
        ledger = build_services(session, settings).ledger
        balance = ledger.get_current_balance()
        print(f"  Current balance: {fmt_amount(balance.current_balance)}")
        print(f"  Threshold:       {fmt_amount(balance.low_balance_threshold)}")
        print(f"  Difference:      {fmt_amount(ledger.get_balance_difference())}")
        if balance.is_low:
            print("  ** Balance is below the threshold **")
    return 0


def _cmd_set_threshold(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import ValidationError
    from ledger_batch.jobs import build_services

    try:
        with session_scope() as session:
            balance = build_services(session, settings).ledger.update_low_balance_threshold(
                args.threshold
            )
            print(f"  Threshold set to {fmt_amount(balance.low_balance_threshold)}")
    except ValidationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


def _cmd_adjust_balance(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_batch.jobs import build_services

    with session_scope() as session:
        row = build_services(session, settings).ledger.adjust_balance(
            args.amount, args.reason, args.notes
        )
        print(
            f"  Adjustment #{row.id}: {fmt_amount(row.balance_before)} -> "
            f"{fmt_amount(row.balance_after)}"
        )
    return 0


def _cmd_delete_transaction(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import RecomputationError, TransactionNotFoundError
    from ledger_batch.jobs import build_services

    try:
        with session_scope() as session:
            result = build_services(session, settings).ledger.delete_transaction(
                args.transaction_id
            )
    except (TransactionNotFoundError, RecomputationError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"  Transaction #{args.transaction_id} deleted.")
    print(f"  Balance: {fmt_amount(result.final_balance)}")
    return 0


def _cmd_alerts(settings) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.models.alert import AlertSeverity, AlertType
    from ledger_kernel.selectors import PayrollSelector

    with session_scope() as session:
        active = PayrollSelector(session).get_active_alerts()
        if not active:
            print("  No active alerts.")
        for alert in active:
            print(
                f"  {alert.id:>6}  {alert.created_at:%Y-%m-%d %H:%M}  "
                f"[{AlertSeverity(alert.severity).value}] "
                f"{AlertType(alert.alert_type).value}: {alert.message}"
            )
    return 0


def _cmd_resolve_alert(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import AlertNotFoundError
    from ledger_batch.jobs import build_services

    try:
        with session_scope() as session:
            build_services(session, settings).alerts.resolve_alert(args.alert_id)
    except AlertNotFoundError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"  Alert #{args.alert_id} resolved.")
    return 0


def _cmd_transactions(settings, args) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.models.transaction import TransactionType
    from ledger_kernel.selectors import LedgerSelector

    with session_scope() as session:
        rows = LedgerSelector(session).get_all_transactions()[: args.limit]
        if not rows:
            print("  No transactions.")
        for row in rows:
            print(
                f"  {row.id:>6}  {row.created_at:%Y-%m-%d %H:%M}  "
                f"{TransactionType(row.transaction_type).value:<10}  {fmt_amount(row.signed_amount):>14}  "
                f"{fmt_amount(row.balance_after):>14}  {row.description}"
            )
    return 0


def _cmd_migrate(settings) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import MigrationError
    from ledger_batch.jobs import build_services

    try:
        with session_scope() as session:
            result = build_services(session, settings).ledger.migrate_historical_orders_and_deliveries()
    except MigrationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"  Orders migrated:     {result.orders_migrated}")
    print(f"  Deliveries migrated: {result.deliveries_migrated}")
    print(f"  Expenses migrated:   {result.expenses_migrated}")
    print(f"  Net balance:         {fmt_amount(result.net_balance)}")
    return 0


def _cmd_recalculate(settings) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.exceptions import RecomputationError
    from ledger_batch.jobs import build_services

    try:
        with session_scope() as session:
            result = build_services(session, settings).ledger.recalculate_balance_from_all_transactions()
    except RecomputationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"  Transactions replayed: {result.transactions_processed}")
    print(f"  Rows corrected:        {result.transactions_updated}")
    print(
        f"  Balance: {fmt_amount(result.previous_balance)} -> "
        f"{fmt_amount(result.final_balance)}"
    )
    return 0


def _print_summary(label: str, summary) -> None:
    print(
        f"  {label}: paid={summary.paid} pending={summary.pending} "
        f"failed={summary.failed} skipped={summary.skipped} errors={summary.errors}"
    )


def _run_once(scheduler, job: str) -> int:
    run = scheduler.run_job(job)
    if not run.succeeded:
        print(f"  ERROR: {run.error}", file=sys.stderr)
        return 1
    report = run.result
    if report.salary is not None:
        _print_summary("Salary payments", report.salary)
    if report.pending is not None:
        _print_summary("Pending retry  ", report.pending)
    print(f"  Alerts created: {report.alerts_created}")
    return 0


def _cmd_check_alerts(settings) -> int:
    from ledger_kernel.db.engine import session_scope
    from ledger_kernel.models.alert import AlertSeverity, AlertType
    from ledger_batch.jobs import build_services

    with session_scope() as session:
        services = build_services(session, settings)
        created = services.alerts.check_and_create_alerts()
        services.commit()
        for alert in created:
            print(
                f"  [{AlertSeverity(alert.severity).value}] "
                f"{AlertType(alert.alert_type).value}: {alert.message}"
            )
        print(f"  Alerts created: {len(created)}")
    return 0


def _build_scheduler(settings):
    from ledger_batch.jobs import build_job_registry
    from ledger_batch.services.scheduler import LedgerScheduler
    from ledger_kernel.db.engine import get_session_factory
    from ledger_kernel.domain.clock import SystemClock

    clock = SystemClock(settings.scheduler.timezone)
    return LedgerScheduler(
        session_factory=get_session_factory(),
        jobs=build_job_registry(settings, clock),
        schedules=settings.scheduler.schedules,
        clock=clock,
        tick_interval_seconds=settings.scheduler.poll_interval_seconds,
    )


def _cmd_scheduler(scheduler) -> int:
    print("  Scheduler running. Press Ctrl-C to stop.")
    for schedule in scheduler.schedules:
        state = "enabled" if schedule.enabled else "disabled"
        print(f"    {schedule.name:<16} {schedule.cron_expression:<14} {state}")
    scheduler.start()
    try:
        while scheduler.is_running:
            scheduler.wait(timeout=1.0)
    except KeyboardInterrupt:
        print()
    finally:
        scheduler.stop()
    return 0


# =============================================================================
# Entry point
# =============================================================================


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    from ledger_config import get_active_settings
    from ledger_kernel.db.engine import init_engine_from_url

    try:
        settings = get_active_settings(args.config)
    except (OSError, KeyError, ValueError) as exc:
        print(f"  ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 1

    db = settings.database
    try:
        init_engine_from_url(
            args.db_url or db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    command = args.command
    if command == "scheduler":
        return _cmd_scheduler(_build_scheduler(settings))

    muted = enable_quiet_logging()
    try:
        if command == "init-db":
            return _cmd_init_db(settings)
        if command == "initialize-balance":
            return _cmd_initialize_balance(settings, args)
        if command == "balance":
            return _cmd_balance(settings)
        if command == "set-threshold":
            return _cmd_set_threshold(settings, args)
        if command == "adjust-balance":
            return _cmd_adjust_balance(settings, args)
        if command == "delete-transaction":
            return _cmd_delete_transaction(settings, args)
        if command == "alerts":
            return _cmd_alerts(settings)
        if command == "resolve-alert":
            return _cmd_resolve_alert(settings, args)
        if command == "transactions":
            return _cmd_transactions(settings, args)
        if command == "migrate":
            return _cmd_migrate(settings)
        if command == "recalculate":
            return _cmd_recalculate(settings)
        if command == "check-alerts":
            return _cmd_check_alerts(settings)

        from ledger_batch.jobs import PAYROLL_CYCLE, PENDING_RETRY

        job = PAYROLL_CYCLE if command == "run-payroll" else PENDING_RETRY
        return _run_once(_build_scheduler(settings), job)
    finally:
        restore_logging(muted)


if __name__ == "__main__":
    sys.exit(main())
