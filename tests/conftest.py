"""
Shared pytest fixtures for test suite.

Provides an in-memory Redis double, stores wired to it, and fake model
clients so the pipeline can be exercised without network access.
"""

import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from redis.exceptions import WatchError

from alphabook.config import reset_config
from alphabook.providers import reset_default_provider
from alphabook.providers.base import BaseImageClient, BaseLLMClient
from alphabook.settings import SettingsStore, reset_settings_store
from alphabook.utils.blob_storage import LocalBlobStore, reset_default_blob_store
from alphabook.utils.repository import RedisStoryRepository

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"

_PIPELINE_COMMANDS = {"exists", "hset", "hgetall", "hdel", "delete", "zadd", "zrem", "get", "set"}


class FakePipeline:
    """
    Minimal redis-py pipeline double.

    After ``watch()`` and before ``multi()`` commands run immediately, as
    they do in redis-py; otherwise they are buffered until ``execute()``.
    """

    def __init__(self, redis_client: "FakeRedis"):
        self._redis = redis_client
        self._commands: List[Any] = []
        self._watching = False
        self._in_multi = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.reset()

    def __getattr__(self, name):
        if name not in _PIPELINE_COMMANDS:
            raise AttributeError(name)
        method = getattr(self._redis, name)

        def command(*args, **kwargs):
            if self._watching and not self._in_multi:
                return method(*args, **kwargs)
            self._commands.append((method, args, kwargs))
            return self

        return command

    def watch(self, *keys):
        self._watching = True

    def multi(self):
        self._in_multi = True

    def execute(self):
        if self._watching and self._redis.watch_failures > 0:
            self._redis.watch_failures -= 1
            self._commands = []
            raise WatchError("Watched variable changed.")
        results = [method(*args, **kwargs) for method, args, kwargs in self._commands]
        self.reset()
        return results

    def reset(self):
        self._commands = []
        self._watching = False
        self._in_multi = False


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the app uses."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.watch_failures = 0

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.strings or key in self.hashes or key in self.zsets)

    def get(self, key):
        return self.strings.get(key)

    def set(self, key, value):
        self.strings[key] = str(value)
        return True

    def keys(self, pattern="*"):
        all_keys = list(self.strings) + list(self.hashes) + list(self.zsets)
        return [key for key in all_keys if fnmatch.fnmatch(key, pattern)]

    def hset(self, key, mapping=None, **kwargs):
        values = dict(mapping or {}, **kwargs)
        target = self.hashes.setdefault(key, {})
        added = sum(1 for field in values if field not in target)
        target.update({field: str(value) for field, value in values.items()})
        return added

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hdel(self, key, *fields):
        target = self.hashes.get(key, {})
        removed = 0
        for field in fields:
            if field in target:
                del target[field]
                removed += 1
        if key in self.hashes and not target:
            del self.hashes[key]
        return removed

    def delete(self, *keys):
        removed = 0
        for key in keys:
            for space in (self.strings, self.hashes, self.zsets):
                if key in space:
                    del space[key]
                    removed += 1
        return removed

    def zadd(self, key, mapping):
        target = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in target)
        target.update(mapping)
        return added

    def zrem(self, key, *members):
        target = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if member in target:
                del target[member]
                removed += 1
        return removed

    def zrevrange(self, key, start, end):
        members = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        names = [member for member, _ in members]
        return names[start:] if end == -1 else names[start:end + 1]


class FakeLLMClient(BaseLLMClient):
    """Text client returning a canned JSON value (or raising a canned error)."""

    def __init__(self, response: Any = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    @property
    def model_name(self) -> str:
        return "fake-text-model"

    def generate_json(self, prompt, response_schema, system_prompt=None):
        self.calls.append({"prompt": prompt, "schema": response_schema, "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        return self.response


class FakeImageClient(BaseImageClient):
    """
    Image client returning scripted results, one per call.

    Each result is ``(bytes, mime)``, None (no image) or an exception to
    raise. Once the script runs out every call returns a PNG.
    """

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.calls: List[List[Any]] = []

    @property
    def model_name(self) -> str:
        return "fake-image-model"

    def generate_image(self, turns):
        self.calls.append(list(turns))
        result = self.results.pop(0) if self.results else (PNG_BYTES, "image/png")
        if isinstance(result, Exception):
            raise result
        return result


def make_story_response(letters: List[str], moral: str = "Friends help each other.") -> Dict[str, Any]:
    """A well-formed model response with one page per letter."""
    return {
        "pages": [
            {
                "letter": letter,
                "text": f"{letter}{letter.lower()}ventures begin with the letter {letter}.",
                "imagePrompt": f"Sea creatures gathered around a glowing letter {letter}",
            }
            for letter in letters
        ],
        "moral": moral,
    }


def make_story_record(story_id: str = "story-1", **overrides) -> Dict[str, Any]:
    record = {
        "id": story_id,
        "title": "Ocean Friends",
        "prompt": "Sea creatures learning to share",
        "age": "3-8",
        "visibility": "public",
        "status": "generating",
        "letterCount": 3,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "deletionToken": "0123456789abcdef0123456789abcdef",
    }
    record.update(overrides)
    return record


def hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials and cached singletons out of tests."""
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    resets = (reset_config, reset_settings_store, reset_default_blob_store, reset_default_provider)
    for reset in resets:
        reset()
    yield
    for reset in resets:
        reset()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def repository(fake_redis):
    return RedisStoryRepository(fake_redis)


@pytest.fixture
def settings_store(fake_redis):
    return SettingsStore(fake_redis)


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "media"), "http://testserver/media")
