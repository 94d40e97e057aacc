"""Scheduler service."""

from ledger_batch.services.scheduler import LedgerScheduler

__all__ = ["LedgerScheduler"]
