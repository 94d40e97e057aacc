"""Read-only selectors over the ledger, payroll and alerts."""

from ledger_kernel.selectors.ledger_selector import LedgerSelector, LedgerSummary
from ledger_kernel.selectors.payroll_selector import PayrollSelector

__all__ = ["LedgerSelector", "LedgerSummary", "PayrollSelector"]
