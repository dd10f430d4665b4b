"""
Core modules for AI Story Gateway.

This package contains request parsing, sanitization, validation, prompt
building, token budgeting, rate limiting, response extraction, auditing
and the pipeline that ties them together.
"""
