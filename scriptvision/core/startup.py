"""
Startup validation and environment checks.

Validates required API keys and configuration at application startup.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from scriptvision.core.config import ScriptVisionConfig
from scriptvision.core.constants import StoreBackend
from scriptvision.core.env_loader import get_env, get_jwt_secret


@dataclass
class EnvironmentCheck:
    """Result of environment validation."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_environment(config: Optional[ScriptVisionConfig] = None) -> EnvironmentCheck:
    """
    Validate the environment configuration.

    Checks:
    - The image provider key is set
    - A JWT secret is set
    - The Redis URL is set when the Redis store is selected

    Returns:
        EnvironmentCheck with validation status and any errors/warnings
    """
    config = config or ScriptVisionConfig()
    errors = []
    warnings = []

    key_env = config.image_provider.api_key_env
    if get_env(key_env) is None:
        errors.append(f"{key_env} not set - image generation is unavailable")

    secret_env = config.auth.jwt_secret_env
    if get_jwt_secret(secret_env) is None:
        errors.append(f"{secret_env} not set - requests cannot be authenticated")

    if config.store.backend == StoreBackend.REDIS.value and not config.store.redis_url:
        errors.append("REDIS_URL not set - required for the redis store backend")
    elif config.store.backend == StoreBackend.MEMORY.value:
        warnings.append("Using in-memory session store - run a single server process")

    return EnvironmentCheck(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings
    )
