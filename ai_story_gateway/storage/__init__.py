"""
Storage layer for AI Story Gateway.

SQLite-backed audit ledger and rate-limit counters.
"""
