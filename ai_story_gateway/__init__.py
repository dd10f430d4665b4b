"""
AI Story Gateway.

Rate-limited, audited generation of Epics, Features, Stories and Tasks
through an LLM completion service.
"""

__version__ = "0.1.0"
