"""
Configuration management and loading.

Handles gateway settings: rate-limit policies, generation limits,
storage location and bearer-token verification.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass(frozen=True)
class RateLimitPolicyConfig:
    """Quota for one class of caller."""
    max_requests: int
    window_seconds: int

    def __post_init__(self):
        """Validate quota values are positive."""
        if self.max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate-limit policies for anonymous and authenticated callers."""
    anonymous: RateLimitPolicyConfig = field(
        default_factory=lambda: RateLimitPolicyConfig(max_requests=3, window_seconds=24 * 60 * 60)
    )
    authenticated: RateLimitPolicyConfig = field(
        default_factory=lambda: RateLimitPolicyConfig(max_requests=50, window_seconds=60 * 60)
    )


@dataclass(frozen=True)
class GenerationConfig:
    """Limits and model settings for the completion call."""
    model: str = "gpt-4o-mini"
    max_prompt_tokens: int = 4000
    max_output_tokens: int = 1500
    temperature: float = 0.2
    timeout_seconds: float = 60.0

    def __post_init__(self):
        """Validate generation settings."""
        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")
        if self.max_prompt_tokens <= 0:
            raise ValueError("max_prompt_tokens must be > 0")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    """Location of the audit ledger and rate-limit counters."""
    db_path: str = "ai_story_gateway.db"


@dataclass(frozen=True)
class AuthConfig:
    """Bearer token verification settings."""
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"


@dataclass(frozen=True)
class GatewayConfig:
    """Complete gateway configuration."""
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)


_SECTION_KEYS = {
    'rate_limits': {'anonymous', 'authenticated'},
    'generation': {'model', 'max_prompt_tokens', 'max_output_tokens', 'temperature', 'timeout_seconds'},
    'storage': {'db_path'},
    'auth': {'jwt_secret', 'jwt_algorithm'},
}


def load_gateway_config(path: str) -> GatewayConfig:
    """Load and validate gateway configuration from YAML file.

    Every section is optional and falls back to GatewayConfig defaults,
    but whatever is present is validated strictly so a typo never
    silently disables a limit.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name in _SECTION_KEYS:
        sections[name] = _get_section(raw_config, name)

    defaults = GatewayConfig()
    return GatewayConfig(
        rate_limits=_parse_rate_limits(sections['rate_limits'], defaults.rate_limits),
        generation=_parse_generation(sections['generation']),
        storage=_parse_storage(sections['storage']),
        auth=_parse_auth(sections['auth'])
    )


def _get_section(raw_config: Dict, name: str) -> Dict[str, Any]:
    """Return a validated section dictionary (empty if absent)."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _parse_rate_limits(data: Dict, defaults: RateLimitConfig) -> RateLimitConfig:
    anonymous = defaults.anonymous
    authenticated = defaults.authenticated
    if 'anonymous' in data:
        anonymous = _parse_policy(data['anonymous'], "rate_limits.anonymous")
    if 'authenticated' in data:
        authenticated = _parse_policy(data['authenticated'], "rate_limits.authenticated")
    return RateLimitConfig(anonymous=anonymous, authenticated=authenticated)


def _parse_policy(data: Any, path: str) -> RateLimitPolicyConfig:
    """Parse and validate a rate-limit policy.

    Args:
        data: Policy configuration data
        path: Path for error messages

    Returns:
        Validated RateLimitPolicyConfig

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'max_requests', 'window_seconds'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('max_requests', 'window_seconds'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"'{key}' in {path} must be a positive integer")

    return RateLimitPolicyConfig(
        max_requests=data['max_requests'],
        window_seconds=data['window_seconds']
    )


def _parse_generation(data: Dict) -> GenerationConfig:
    defaults = GenerationConfig()

    for key in ('max_prompt_tokens', 'max_output_tokens'):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' in generation must be an integer")

    for key in ('temperature', 'timeout_seconds'):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{key}' in generation must be a number")

    if 'model' in data and not isinstance(data['model'], str):
        raise ValueError("'model' in generation must be a string")

    return GenerationConfig(
        model=data.get('model', defaults.model),
        max_prompt_tokens=data.get('max_prompt_tokens', defaults.max_prompt_tokens),
        max_output_tokens=data.get('max_output_tokens', defaults.max_output_tokens),
        temperature=float(data.get('temperature', defaults.temperature)),
        timeout_seconds=float(data.get('timeout_seconds', defaults.timeout_seconds))
    )


def _parse_storage(data: Dict) -> StorageConfig:
    db_path = data.get('db_path', StorageConfig().db_path)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'db_path' in storage must be a non-empty string")
    return StorageConfig(db_path=db_path)


def _parse_auth(data: Dict) -> AuthConfig:
    secret = data.get('jwt_secret')
    if secret is not None and (not isinstance(secret, str) or not secret.strip()):
        raise ValueError("'jwt_secret' in auth must be a non-empty string")

    algorithm = data.get('jwt_algorithm', AuthConfig().jwt_algorithm)
    if not isinstance(algorithm, str) or not algorithm.startswith("HS"):
        raise ValueError("'jwt_algorithm' in auth must be an HMAC algorithm (HS256, HS384, HS512)")

    return AuthConfig(jwt_secret=secret, jwt_algorithm=algorithm)
