"""
Process-wide application settings.

Settings live in the key-value store under ``settings:<KEY>`` as JSON values.
Reads never fail: a missing key, an undecodable value or a backend error all
fall back to the hardcoded default.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from .utils.alphabet import MIN_LETTERS, MAX_LETTERS

logger = logging.getLogger(__name__)

ALPHABET_LETTERS_COUNT = "ALPHABET_LETTERS_COUNT"
SUBMISSIONS_HALTED = "SUBMISSIONS_HALTED"

DEFAULT_SETTINGS: Dict[str, Any] = {
    ALPHABET_LETTERS_COUNT: 8,
    SUBMISSIONS_HALTED: False,
}


def _coerce_letter_count(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("Letter count must be an integer")
    if isinstance(value, str):
        value = value.strip()
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Letter count must be an integer, got {value!r}")
    if isinstance(value, float) and value != count:
        raise ValueError(f"Letter count must be an integer, got {value!r}")
    if not MIN_LETTERS <= count <= MAX_LETTERS:
        raise ValueError(f"Letter count must be between {MIN_LETTERS} and {MAX_LETTERS}, got {count}")
    return count


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    if value in (0, 1):
        return bool(value)
    raise ValueError(f"Expected a boolean, got {value!r}")


_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    ALPHABET_LETTERS_COUNT: _coerce_letter_count,
    SUBMISSIONS_HALTED: _coerce_bool,
}


def validate_setting(key: str, value: Any) -> Any:
    """
    Validate and normalize a setting value.

    Raises:
        ValueError: If the key is unknown or the value is invalid
    """
    if key not in DEFAULT_SETTINGS:
        raise ValueError(f"Unknown setting: {key}")
    return _VALIDATORS[key](value)


class SettingsStore:
    """Key-value backed settings with per-key defaults."""

    KEY_PREFIX = "settings:"

    def __init__(self, kv_client):
        """
        Args:
            kv_client: Client exposing ``get(key)`` and ``set(key, value)``
                (a redis.Redis created with decode_responses=True)
        """
        self._kv = kv_client

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def get(self, key: str) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting name

        Returns:
            The stored value, or the default when missing or unreadable
        """
        if key not in DEFAULT_SETTINGS:
            logger.warning(f"Requested unknown setting {key}")
            return None
        try:
            raw = self._kv.get(self._key(key))
            if raw is None:
                return DEFAULT_SETTINGS[key]
            return validate_setting(key, json.loads(raw))
        except Exception as e:
            logger.error(f"Error getting setting {key}, using default: {e}")
            return DEFAULT_SETTINGS[key]

    def set(self, key: str, value: Any) -> bool:
        """
        Update a setting.

        Args:
            key: Setting name
            value: New value

        Returns:
            True if stored, False on a backend error

        Raises:
            ValueError: If the key is unknown or the value is invalid
        """
        normalized = validate_setting(key, value)
        try:
            self._kv.set(self._key(key), json.dumps(normalized))
        except Exception as e:
            logger.error(f"Error updating setting {key}: {e}")
            return False
        logger.info(f"Setting {key} updated to {normalized!r}")
        return True

    def get_all(self) -> Dict[str, Any]:
        """Every known setting, each defaulting independently."""
        return {key: self.get(key) for key in DEFAULT_SETTINGS}


_default_settings_store: Optional[SettingsStore] = None


def get_settings_store() -> SettingsStore:
    global _default_settings_store
    if _default_settings_store is None:
        from .utils.repository import get_redis_client
        _default_settings_store = SettingsStore(get_redis_client())
    return _default_settings_store


def reset_settings_store() -> None:
    global _default_settings_store
    _default_settings_store = None
