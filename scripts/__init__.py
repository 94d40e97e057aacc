"""Operator scripts for the restaurant ledger."""
