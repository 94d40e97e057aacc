"""
ledger_batch -- time-driven jobs for the restaurant ledger.

Pure cron evaluation lives in ``ledger_batch.domain``; the job bodies that
drive payroll, pending retry and alert evaluation live in
``ledger_batch.jobs``; the in-process polling scheduler lives in
``ledger_batch.services.scheduler``.
"""
