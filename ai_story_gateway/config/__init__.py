"""
Configuration for AI Story Gateway.

Loads gateway settings from YAML and sets up structured logging.
"""

from .loader import GatewayConfig, load_gateway_config
from .logging import configure_logging

__all__ = ["GatewayConfig", "configure_logging", "load_gateway_config"]
