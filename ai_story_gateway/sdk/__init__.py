"""
SDK for AI Story Gateway.

Completion clients for external language-model services.
"""

from .openai_client import CompletionClient, OpenAICompletionClient

__all__ = ["CompletionClient", "OpenAICompletionClient"]
