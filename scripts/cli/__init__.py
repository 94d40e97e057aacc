"""
Operator CLI for the restaurant ledger.

Sets up the database, records the opening balance, runs the historical
migration and recomputation, triggers payroll jobs by hand, and runs the
scheduler in the foreground.

Entry point: python -m scripts.cli.main <command>
"""

from scripts.cli.main import main

__all__ = ["main"]
