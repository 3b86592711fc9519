"""
Application configuration.

All settings come from environment variables (optionally loaded from a .env
file by the entry points). Values are validated once, when the Config object
is built, so a bad deployment fails at startup instead of mid-job.
"""

import os
from pathlib import Path
from typing import List, Optional

# Get the project root (src/alphabook/config.py -> project root)
_PROJECT_ROOT = Path(__file__).parent.parent.parent


def get_env_int(var_name: str, default: int, min_value: int = 1, max_value: int = 100000) -> int:
    """Safely get and validate an integer environment variable."""
    value = os.getenv(var_name)
    if value is None or value == "":
        return default
    try:
        int_value = int(value)
    except ValueError:
        raise ValueError(f"{var_name} must be a valid integer, got '{value}'")
    if int_value < min_value or int_value > max_value:
        raise ValueError(
            f"{var_name} must be between {min_value} and {max_value}, got {int_value}"
        )
    return int_value


def get_env_bool(var_name: str, default: bool) -> bool:
    """Read a true/false environment variable."""
    value = os.getenv(var_name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_env_str(var_name: str, default: str, allowed_values: Optional[List[str]] = None) -> str:
    """Safely get and validate a string environment variable."""
    value = os.getenv(var_name, default)
    if allowed_values and value not in allowed_values:
        raise ValueError(
            f"{var_name} must be one of {allowed_values}, got '{value}'"
        )
    return value


class Config:
    """
    Runtime configuration snapshot.

    Attributes are upper-case so the object can be loaded straight into
    ``flask.Flask.config`` via ``app.config.from_object``.
    """

    def __init__(self) -> None:
        # Secrets
        self.ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
        self.CRON_SECRET = os.getenv("CRON_SECRET", "")

        # Storage
        self.REDIS_URL = get_env_str("REDIS_URL", "redis://localhost:6379/0")
        self.USE_REDIS_STORAGE = get_env_bool("USE_REDIS_STORAGE", True)
        self.STORIES_DIR = get_env_str("STORIES_DIR", str(_PROJECT_ROOT / "stories"))
        self.BLOB_DIR = get_env_str("BLOB_DIR", str(_PROJECT_ROOT / "media"))
        self.BLOB_BASE_URL = get_env_str("BLOB_BASE_URL", "http://localhost:5000/media")

        # Model providers
        self.GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
        self.TEXT_MODEL = get_env_str("TEXT_MODEL", "gemini-2.0-flash-lite")
        self.IMAGE_MODEL = get_env_str("IMAGE_MODEL", "gemini-2.0-flash-exp")
        self.MODEL_TIMEOUT_SECONDS = get_env_int("MODEL_TIMEOUT_SECONDS", 120, min_value=1, max_value=3600)

        # Background jobs
        self.USE_BACKGROUND_JOBS = get_env_bool("USE_BACKGROUND_JOBS", False)
        self.JOB_TIMEOUT = get_env_str("JOB_TIMEOUT", "30m")
        self.STORY_TIMEOUT_HOURS = get_env_int("STORY_TIMEOUT_HOURS", 24, min_value=1, max_value=24 * 30)

        # Rate limits (flask-limiter syntax)
        self.CREATE_STORY_RATE_LIMIT = get_env_str("CREATE_STORY_RATE_LIMIT", "5 per minute")
        self.LIST_STORIES_RATE_LIMIT = get_env_str("LIST_STORIES_RATE_LIMIT", "60 per minute")
        self.GET_STORY_RATE_LIMIT = get_env_str("GET_STORY_RATE_LIMIT", "120 per minute")
        self.RATELIMIT_STORAGE_URI = get_env_str("RATELIMIT_STORAGE_URI", "memory://")


_config: Optional[Config] = None


def get_config() -> Config:
    """Return the process-wide configuration, building it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Forget the cached configuration (used by tests after patching the environment)."""
    global _config
    _config = None
