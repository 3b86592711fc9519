"""
Tests for story repository implementations.
"""

import json
import threading
import time

import pytest

from alphabook.utils.errors import StoryNotFoundError
from alphabook.utils.repository import FileStoryRepository, RedisStoryRepository
from tests.conftest import hours_ago, make_story_record


class TestRedisRepository:
    """Test suite for RedisStoryRepository."""

    def test_create_and_get(self, repository, fake_redis):
        repository.create(make_story_record("abc"))
        story = repository.get("abc")
        assert story["title"] == "Ocean Friends"
        assert story["letterCount"] == 3
        assert "story:abc" in fake_redis.hashes
        assert "abc" in fake_redis.zsets["stories"]

    def test_create_duplicate_id_fails(self, repository):
        repository.create(make_story_record("abc"))
        with pytest.raises(ValueError, match="already exists"):
            repository.create(make_story_record("abc", title="Other"))
        assert repository.get("abc")["title"] == "Ocean Friends"

    def test_create_requires_id(self, repository):
        with pytest.raises(ValueError):
            repository.create({"title": "No id"})

    def test_get_missing_returns_none(self, repository):
        assert repository.get("missing") is None

    def test_update_merges_fields(self, repository):
        repository.create(make_story_record("abc"))
        repository.update("abc", {"status": "generating_story"})
        repository.update("abc", {"visibility": "unlisted"})
        story = repository.get("abc")
        assert story["status"] == "generating_story"
        assert story["visibility"] == "unlisted"
        assert story["title"] == "Ocean Friends"

    def test_update_none_removes_field(self, repository):
        repository.create(make_story_record("abc", error="boom"))
        repository.update("abc", {"error": None})
        assert "error" not in repository.get("abc")

    def test_update_missing_story_raises(self, repository, fake_redis):
        with pytest.raises(StoryNotFoundError):
            repository.update("ghost", {"status": "failed"})
        assert "story:ghost" not in fake_redis.hashes

    def test_update_retries_on_concurrent_modification(self, repository, fake_redis):
        repository.create(make_story_record("abc"))
        fake_redis.watch_failures = 2
        story = repository.update("abc", {"status": "generating_story"})
        assert story["status"] == "generating_story"
        assert fake_redis.watch_failures == 0

    def test_update_gives_up_after_max_retries(self, fake_redis):
        repo = RedisStoryRepository(fake_redis, max_update_retries=2)
        repo.create(make_story_record("abc"))
        fake_redis.watch_failures = 5
        with pytest.raises(RuntimeError, match="Could not update"):
            repo.update("abc", {"status": "generating_story"})

    def test_delete(self, repository, fake_redis):
        repository.create(make_story_record("abc"))
        assert repository.delete("abc") is True
        assert repository.get("abc") is None
        assert "abc" not in fake_redis.zsets.get("stories", {})
        assert repository.delete("abc") is False

    def test_deleted_story_absent_from_list(self, repository):
        repository.create(make_story_record("keep"))
        repository.create(make_story_record("gone"))
        repository.delete("gone")
        assert [s["id"] for s in repository.list()] == ["keep"]

    def test_list_newest_first(self, repository):
        repository.create(make_story_record("old", createdAt=hours_ago(5)))
        repository.create(make_story_record("new", createdAt=hours_ago(1)))
        repository.create(make_story_record("mid", createdAt=hours_ago(3)))
        assert [s["id"] for s in repository.list()] == ["new", "mid", "old"]

    def test_list_drops_stale_index_entries(self, repository, fake_redis):
        repository.create(make_story_record("abc"))
        fake_redis.zadd("stories", {"ghost": 1.0})
        assert [s["id"] for s in repository.list()] == ["abc"]
        assert "ghost" not in fake_redis.zsets["stories"]

    def test_json_string_fields_stored_verbatim(self, repository):
        images = json.dumps(["https://cdn.example.com/a.png"])
        repository.create(make_story_record("abc"))
        repository.update("abc", {"images": images})
        assert repository.get("abc")["images"] == images


class TestFileRepository:
    """Test suite for FileStoryRepository."""

    @pytest.fixture
    def file_repo(self, tmp_path):
        return FileStoryRepository(str(tmp_path / "stories"))

    def test_create_get_update_delete(self, file_repo):
        file_repo.create(make_story_record("abc"))
        file_repo.update("abc", {"status": "generating_story", "error": None})
        story = file_repo.get("abc")
        assert story["status"] == "generating_story"
        assert story["letterCount"] == 3
        assert file_repo.delete("abc") is True
        assert file_repo.get("abc") is None

    def test_create_duplicate_fails(self, file_repo):
        file_repo.create(make_story_record("abc"))
        with pytest.raises(ValueError):
            file_repo.create(make_story_record("abc"))

    def test_update_missing_raises(self, file_repo):
        with pytest.raises(StoryNotFoundError):
            file_repo.update("ghost", {"status": "failed"})

    def test_list_sorted_newest_first(self, file_repo):
        file_repo.create(make_story_record("old", createdAt=hours_ago(5)))
        file_repo.create(make_story_record("new", createdAt=hours_ago(1)))
        assert [s["id"] for s in file_repo.list()] == ["new", "old"]

    def test_list_empty_directory(self, file_repo):
        assert file_repo.list() == []

    def test_rejects_path_like_ids(self, file_repo):
        assert file_repo.get("../etc/passwd") is None
        with pytest.raises(ValueError):
            file_repo.create(make_story_record("../escape"))

    def test_deleted_story_absent_from_list(self, file_repo):
        file_repo.create(make_story_record("keep"))
        file_repo.create(make_story_record("gone"))
        file_repo.delete("gone")
        assert [s["id"] for s in file_repo.list()] == ["keep"]

    def test_instances_on_same_directory_share_lock(self, tmp_path):
        first = FileStoryRepository(str(tmp_path / "stories"))
        second = FileStoryRepository(str(tmp_path / "stories"))
        other = FileStoryRepository(str(tmp_path / "elsewhere"))
        assert first._lock is second._lock
        assert first._lock is not other._lock

    def test_concurrent_updates_from_two_instances_both_land(self, tmp_path):
        job_repo = FileStoryRepository(str(tmp_path / "stories"))
        web_repo = FileStoryRepository(str(tmp_path / "stories"))
        job_repo.create(make_story_record("abc"))

        reading = threading.Event()
        original_read = job_repo._read

        def slow_read(path):
            record = original_read(path)
            reading.set()
            time.sleep(0.2)
            return record

        job_repo._read = slow_read
        worker = threading.Thread(target=job_repo.update, args=("abc", {"images": json.dumps(["x"])}))
        worker.start()
        assert reading.wait(5)
        web_repo.update("abc", {"visibility": "unlisted"})
        worker.join(5)

        story = web_repo.get("abc")
        assert story["visibility"] == "unlisted"
        assert json.loads(story["images"]) == ["x"]
