"""
Command-line interface for AI Story Gateway.
"""
