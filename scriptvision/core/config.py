"""
ScriptVision Configuration Management

Centralized configuration system with JSON loading, environment overrides
and validation.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_MAX_IMAGES_PER_MINUTE,
    ESTIMATED_SECONDS_PER_IMAGE,
    HEARTBEAT_INTERVAL,
    INTER_REQUEST_DELAY,
    MAX_CONNECTION_SECONDS,
    MAX_IMAGES_PER_RUN,
    MEDIUM_VIDEO_THRESHOLD,
    MIN_SCENE_DURATION,
    SECONDS_PER_SCENE_INTERVAL,
    SESSION_CLEANUP_INTERVAL,
    SESSION_TTL_SECONDS,
    SHORT_VIDEO_MAX_IMAGES,
    SHORT_VIDEO_MIN_IMAGES,
    SHORT_VIDEO_THRESHOLD,
    StoreBackend,
)
from .env_loader import get_env
from .exceptions import ConfigurationError, InvalidConfigError


@dataclass
class GenerationConfig:
    """Scene planning and image generation policy."""
    max_images_per_run: int = MAX_IMAGES_PER_RUN
    min_scene_duration: float = MIN_SCENE_DURATION
    seconds_per_scene_interval: float = SECONDS_PER_SCENE_INTERVAL
    short_video_threshold: float = SHORT_VIDEO_THRESHOLD
    medium_video_threshold: float = MEDIUM_VIDEO_THRESHOLD
    short_video_min_images: int = SHORT_VIDEO_MIN_IMAGES
    short_video_max_images: int = SHORT_VIDEO_MAX_IMAGES
    inter_request_delay: float = INTER_REQUEST_DELAY
    estimated_seconds_per_image: float = ESTIMATED_SECONDS_PER_IMAGE
    default_max_images_per_minute: int = DEFAULT_MAX_IMAGES_PER_MINUTE


@dataclass
class ImageProviderConfig:
    """Image generation provider settings."""
    model: str = "dall-e-3"
    size: str = "1024x1792"  # vertical 9:16
    quality: str = "standard"
    mime_type: str = "image/png"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str = "https://api.openai.com/v1"
    timeout: int = 120


@dataclass
class PlannerConfig:
    """Text model used for generative scene breakdowns."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout: int = 60
    max_retries: int = 2
    retry_base_delay: float = 2.0


@dataclass
class StreamingConfig:
    """Event stream and session lifetimes (seconds)."""
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    max_connection_seconds: float = MAX_CONNECTION_SECONDS
    session_ttl_seconds: float = SESSION_TTL_SECONDS
    cleanup_interval_seconds: float = SESSION_CLEANUP_INTERVAL


@dataclass
class AuthConfig:
    """JWT verification settings."""
    jwt_secret_env: str = "JWT_SECRET"
    algorithm: str = "HS256"
    access_token_minutes: int = 60


@dataclass
class StoreConfig:
    """Backend for session and generation-lock state."""
    backend: str = StoreBackend.MEMORY.value
    redis_url: Optional[str] = None
    key_prefix: str = "scriptvision"


@dataclass
class ServerConfig:
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000", "tauri://localhost"])
    rate_limit: str = "20/minute"
    environment: str = "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@dataclass
class ScriptVisionConfig:
    """Main configuration class for ScriptVision."""

    project_name: str = "ScriptVision"
    version: str = "1.0.0"
    verbose_logging: bool = False
    logs_dir: Path = field(default_factory=lambda: Path("logs"))

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    image_provider: ImageProviderConfig = field(default_factory=ImageProviderConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_dict(cls, data: dict) -> 'ScriptVisionConfig':
        """Create ScriptVisionConfig from dictionary."""
        config = cls()

        config.project_name = data.get('project_name', config.project_name)
        config.version = data.get('version', config.version)
        config.verbose_logging = data.get('verbose_logging', config.verbose_logging)
        if 'logs_dir' in data:
            config.logs_dir = Path(data['logs_dir'])

        sections = {
            'generation': GenerationConfig,
            'image_provider': ImageProviderConfig,
            'planner': PlannerConfig,
            'streaming': StreamingConfig,
            'auth': AuthConfig,
            'store': StoreConfig,
            'server': ServerConfig,
        }
        for name, section_cls in sections.items():
            if name in data:
                try:
                    setattr(config, name, section_cls(**data[name]))
                except TypeError as e:
                    raise InvalidConfigError(f"Invalid '{name}' section: {e}")

        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a JSON-serialisable dictionary."""
        data = asdict(self)
        data['logs_dir'] = str(self.logs_dir)
        return data

    def validate(self) -> None:
        """Reject values the pipeline cannot run with."""
        gen = self.generation
        if gen.max_images_per_run < 1:
            raise InvalidConfigError("generation.max_images_per_run must be >= 1")
        if gen.short_video_min_images > gen.short_video_max_images:
            raise InvalidConfigError("generation.short_video_min_images exceeds short_video_max_images")
        if gen.seconds_per_scene_interval <= 0 or gen.inter_request_delay < 0:
            raise InvalidConfigError("generation intervals must be positive")

        stream = self.streaming
        for name in ('heartbeat_interval', 'max_connection_seconds',
                     'session_ttl_seconds', 'cleanup_interval_seconds'):
            if getattr(stream, name) <= 0:
                raise InvalidConfigError(f"streaming.{name} must be positive")

        backends = {b.value for b in StoreBackend}
        if self.store.backend not in backends:
            raise InvalidConfigError(
                f"Unknown store backend: {self.store.backend}",
                {"allowed": sorted(backends)}
            )


# (environment variable, section, attribute, transform)
ENV_OVERRIDES = (
    ('SCRIPTVISION_STORE', 'store', 'backend', str.lower),
    ('REDIS_URL', 'store', 'redis_url', None),
    ('OPENAI_BASE_URL', 'image_provider', 'base_url', None),
    ('JWT_ALGORITHM', 'auth', 'algorithm', None),
    ('SCRIPTVISION_ENV', 'server', 'environment', str.lower),
    ('FRONTEND_URL', 'server', 'cors_origins', lambda url: [url]),
)


def apply_env_overrides(config: ScriptVisionConfig) -> ScriptVisionConfig:
    """Apply environment variable overrides on top of file values."""
    for env_name, section, attribute, transform in ENV_OVERRIDES:
        value = get_env(env_name)
        if value is None:
            continue
        setattr(getattr(config, section), attribute, transform(value) if transform else value)

    config.validate()
    return config


def load_config(config_path: Optional[Path] = None) -> ScriptVisionConfig:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to configuration file. Defaults to $SCRIPTVISION_CONFIG
            or config/scriptvision_config.json.

    Returns:
        Loaded ScriptVisionConfig instance with environment overrides applied
    """
    if config_path is None:
        config_path = Path(get_env('SCRIPTVISION_CONFIG', default='config/scriptvision_config.json'))
    config_path = Path(config_path)

    if not config_path.exists():
        return apply_env_overrides(ScriptVisionConfig())

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfigError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load config: {e}")

    return apply_env_overrides(ScriptVisionConfig.from_dict(data))


def save_config(config: ScriptVisionConfig, config_path: Path) -> None:
    """Write configuration to a JSON file."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config.to_dict(), f, indent=2)


# Global config instance
_config: Optional[ScriptVisionConfig] = None


def get_config() -> ScriptVisionConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: ScriptVisionConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
