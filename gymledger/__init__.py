"""Gym membership lifecycle and cash ledger."""

__version__ = "0.1.0"
