"""
Story repository abstraction layer.

Provides a unified interface for story storage so the pipeline, the sweeper
and the HTTP layer never depend on a specific backend. Records are flat
dictionaries using the camelCase field names of the wire format.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Any, List
import json
import logging
import os
import threading
from pathlib import Path

from .errors import StoryNotFoundError
from ..models import parse_timestamp

logger = logging.getLogger(__name__)

# Fields stored as integers; every other field is a string.
_INT_FIELDS = ("letterCount",)


class StoryRepository(ABC):
    """
    Abstract interface for story storage operations.

    ``update`` must merge the given fields into the stored record rather than
    overwrite it, so that a status change and a concurrent visibility toggle
    never clobber each other.
    """

    @abstractmethod
    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Persist a new story record.

        Args:
            record: Story record; must contain ``id`` and ``createdAt``

        Returns:
            The stored record

        Raises:
            ValueError: If the record has no id or the id already exists
        """

    @abstractmethod
    def get(self, story_id: str) -> Optional[Dict[str, Any]]:
        """
        Load a story record.

        Args:
            story_id: Unique identifier for the story

        Returns:
            Story record if found, None otherwise
        """

    @abstractmethod
    def update(self, story_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge fields into an existing story record.

        A field whose value is None is removed from the record.

        Args:
            story_id: ID of the story to update
            fields: Fields to set

        Returns:
            The updated record

        Raises:
            StoryNotFoundError: If the story does not exist
        """

    @abstractmethod
    def delete(self, story_id: str) -> bool:
        """
        Delete a story record.

        Returns:
            True if a record was removed, False if it did not exist
        """

    @abstractmethod
    def list(self) -> List[Dict[str, Any]]:
        """Return every story record, newest first."""


def _split_fields(fields: Dict[str, Any]):
    """Split an update into values to write and field names to remove."""
    to_set = {k: v for k, v in fields.items() if v is not None and k != "id"}
    to_remove = [k for k, v in fields.items() if v is None and k != "id"]
    return to_set, to_remove


class RedisStoryRepository(StoryRepository):
    """
    Redis-backed story repository.

    Each story is a hash at ``story:<id>``; the sorted set ``stories`` (scored
    by creation time) is the listing index. Partial updates are plain HSETs
    of the given fields inside a WATCH/MULTI transaction, so they are atomic
    merges and never resurrect a story deleted concurrently.
    """

    KEY_PREFIX = "story:"
    INDEX_KEY = "stories"

    def __init__(self, redis_client, max_update_retries: int = 5):
        """
        Initialize the Redis repository.

        Args:
            redis_client: A redis.Redis client created with decode_responses=True
            max_update_retries: Attempts before giving up on a contended update
        """
        self._redis = redis_client
        self._max_update_retries = max_update_retries

    def _key(self, story_id: str) -> str:
        return f"{self.KEY_PREFIX}{story_id}"

    @staticmethod
    def _encode(record: Dict[str, Any]) -> Dict[str, str]:
        encoded = {}
        for key, value in record.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value)
            encoded[key] = str(value)
        return encoded

    @staticmethod
    def _decode(data: Dict[str, str]) -> Dict[str, Any]:
        record: Dict[str, Any] = dict(data)
        for key in _INT_FIELDS:
            if key in record:
                try:
                    record[key] = int(record[key])
                except (TypeError, ValueError):
                    record[key] = None
        return record

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        story_id = record.get("id")
        if not story_id:
            raise ValueError("Story record requires an id")

        key = self._key(story_id)
        if self._redis.exists(key):
            raise ValueError(f"Story already exists: {story_id}")

        to_set, _ = _split_fields(record)
        to_set["id"] = story_id
        created_at = parse_timestamp(record.get("createdAt"))
        score = created_at.timestamp() if created_at else 0.0

        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(key, mapping=self._encode(to_set))
        pipe.zadd(self.INDEX_KEY, {story_id: score})
        pipe.execute()

        logger.debug(f"Created story {story_id}")
        return self._decode(self._encode(to_set))

    def get(self, story_id: str) -> Optional[Dict[str, Any]]:
        data = self._redis.hgetall(self._key(story_id))
        if not data:
            return None
        return self._decode(data)

    def update(self, story_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        from redis.exceptions import WatchError

        key = self._key(story_id)
        to_set, to_remove = _split_fields(fields)

        for attempt in range(self._max_update_retries):
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    if not pipe.exists(key):
                        raise StoryNotFoundError(story_id)
                    pipe.multi()
                    if to_set:
                        pipe.hset(key, mapping=self._encode(to_set))
                    if to_remove:
                        pipe.hdel(key, *to_remove)
                    pipe.execute()
                    break
                except WatchError:
                    logger.warning(
                        f"Concurrent modification of story {story_id}, retrying update "
                        f"({attempt + 1}/{self._max_update_retries})"
                    )
        else:
            raise RuntimeError(f"Could not update story {story_id} after {self._max_update_retries} attempts")

        record = self.get(story_id)
        if record is None:
            raise StoryNotFoundError(story_id)
        return record

    def delete(self, story_id: str) -> bool:
        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(self._key(story_id))
        pipe.zrem(self.INDEX_KEY, story_id)
        deleted, _ = pipe.execute()
        return bool(deleted)

    def list(self) -> List[Dict[str, Any]]:
        stories = []
        for story_id in self._redis.zrevrange(self.INDEX_KEY, 0, -1):
            record = self.get(story_id)
            if record is None:
                # Index entry without a record: drop it
                logger.warning(f"Removing stale index entry for story {story_id}")
                self._redis.zrem(self.INDEX_KEY, story_id)
                continue
            stories.append(record)
        return stories


# One lock per storage directory, shared by every repository instance
_dir_locks: Dict[str, Any] = {}
_dir_locks_guard = threading.Lock()


def _lock_for(directory: Path):
    key = str(directory.resolve())
    with _dir_locks_guard:
        return _dir_locks.setdefault(key, threading.RLock())


class FileStoryRepository(StoryRepository):
    """
    File-based story repository.

    Stores each story as a JSON file in a directory. Intended for local
    development and tests. Read-merge-write updates are serialized by a lock
    shared by every instance on the same directory.
    """

    def __init__(self, storage_path: Optional[str] = None):
        """
        Initialize file repository.

        Args:
            storage_path: Directory for story files (default: STORIES_DIR from config)
        """
        if storage_path is None:
            from ..config import get_config
            storage_path = get_config().STORIES_DIR
        self._dir = Path(storage_path)
        self._lock = _lock_for(self._dir)

    def _path(self, story_id: str) -> Path:
        # Ids are generated server-side as UUIDs; refuse anything path-like
        if not story_id or "/" in story_id or "\\" in story_id or story_id.startswith("."):
            raise ValueError(f"Invalid story id: {story_id!r}")
        return self._dir / f"{story_id}.json"

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt story file {path}: {e}")
            return None

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        story_id = record.get("id")
        if not story_id:
            raise ValueError("Story record requires an id")
        path = self._path(story_id)
        with self._lock:
            if path.exists():
                raise ValueError(f"Story already exists: {story_id}")
            to_set, _ = _split_fields(record)
            to_set["id"] = story_id
            self._write(path, to_set)
        return dict(to_set)

    def get(self, story_id: str) -> Optional[Dict[str, Any]]:
        try:
            path = self._path(story_id)
        except ValueError:
            return None
        return self._read(path)

    def update(self, story_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        path = self._path(story_id)
        to_set, to_remove = _split_fields(fields)
        with self._lock:
            record = self._read(path)
            if record is None:
                raise StoryNotFoundError(story_id)
            record.update(to_set)
            for key in to_remove:
                record.pop(key, None)
            self._write(path, record)
        return record

    def delete(self, story_id: str) -> bool:
        try:
            path = self._path(story_id)
        except ValueError:
            return False
        with self._lock:
            if path.exists():
                path.unlink()
                return True
        return False

    def list(self) -> List[Dict[str, Any]]:
        if not self._dir.exists():
            return []
        stories = []
        for file_path in self._dir.glob("*.json"):
            record = self._read(file_path)
            if record:
                stories.append(record)
        stories.sort(key=lambda s: s.get("createdAt", ""), reverse=True)
        return stories


def get_redis_client(redis_url: Optional[str] = None):
    """Create a Redis client with string responses."""
    import redis

    if redis_url is None:
        from ..config import get_config
        redis_url = get_config().REDIS_URL
    return redis.from_url(redis_url, decode_responses=True)


def create_story_repository() -> StoryRepository:
    """
    Factory function to create the configured story repository.

    Uses USE_REDIS_STORAGE to choose between RedisStoryRepository and
    FileStoryRepository.

    Returns:
        StoryRepository instance configured based on environment
    """
    from ..config import get_config

    config = get_config()
    if config.USE_REDIS_STORAGE:
        logger.info("Creating Redis story repository")
        return RedisStoryRepository(get_redis_client(config.REDIS_URL))
    logger.info(f"Creating file-based story repository at {config.STORIES_DIR}")
    return FileStoryRepository(config.STORIES_DIR)
