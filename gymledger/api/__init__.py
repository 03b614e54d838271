"""HTTP API for the membership ledger."""
