"""
Environment loading for ScriptVision.

The .env file is read once per process. Values already present in the
process environment win over the file, so container and CI settings are
never shadowed by a developer's .env.

Usage:
    from scriptvision.core.env_loader import ensure_env_loaded, get_env
    ensure_env_loaded()
    redis_url = get_env("REDIS_URL")
"""

import os
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

# Points at an alternative .env file (e.g. a mounted secret)
ENV_FILE_VAR = "SCRIPTVISION_ENV_FILE"

OPENAI_KEY_ENV = "OPENAI_API_KEY"

_env_loaded = False


def get_project_root() -> Path:
    """Directory holding the scriptvision package (where .env is expected)."""
    return Path(__file__).resolve().parent.parent.parent


def env_file_path() -> Path:
    custom = os.environ.get(ENV_FILE_VAR, "").strip()
    return Path(custom) if custom else get_project_root() / ".env"


def ensure_env_loaded(override: bool = False) -> bool:
    """
    Load the .env file into the process environment once.

    Args:
        override: Let .env values replace variables that are already set

    Returns:
        True if a file was loaded by this call
    """
    global _env_loaded

    if _env_loaded:
        return False

    path = env_file_path()
    if not path.is_file():
        return False

    load_dotenv(path, override=override)
    _env_loaded = True
    return True


def get_env(name: str, fallbacks: Sequence[str] = (), default: Optional[str] = None) -> Optional[str]:
    """
    First non-blank value among `name` and its fallbacks.

    Blank strings count as unset.
    """
    ensure_env_loaded()
    for key in (name, *fallbacks):
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def get_openai_api_key(env_name: str = OPENAI_KEY_ENV) -> Optional[str]:
    """Key for both the image and the chat endpoints."""
    return get_env(env_name)


def get_jwt_secret(env_name: str = "JWT_SECRET") -> Optional[str]:
    return get_env(env_name, ["JWT_SECRET_KEY"])
