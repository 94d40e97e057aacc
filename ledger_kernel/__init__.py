"""
Restaurant Ledger Kernel

The accounting and payroll core of a restaurant back office:
- Running balance derived from an append-only transaction log
- Idempotent historical migration of orders, deliveries and expenses
- Chronological recomputation after deletions
- Payroll disbursement gated on fund availability, with pending retry
- Low-balance and pending-payment alerting
"""

__version__ = "0.1.0"
