"""
Timeout sweeper.

Deletes stories whose generation job died: any record still in a
non-terminal status more than ``timeout_hours`` after creation. Jobs have no
in-process cancellation, so this is the only way a stuck story is reclaimed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .models import StoryStatus, parse_timestamp
from .utils.blob_storage import BlobStore
from .utils.repository import StoryRepository

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_HOURS = 24


def is_story_timed_out(story: Dict[str, Any], now: datetime, timeout_hours: int = DEFAULT_TIMEOUT_HOURS) -> bool:
    """
    True if the story is non-terminal and older than the timeout.

    A story with an unknown status is treated as non-terminal. A story whose
    ``createdAt`` cannot be parsed is never considered stuck.
    """
    status = story.get("status")
    if status in (StoryStatus.COMPLETE.value, StoryStatus.FAILED.value):
        return False

    created_at = parse_timestamp(story.get("createdAt"))
    if created_at is None:
        logger.warning(f"Story {story.get('id')} has unparsable createdAt {story.get('createdAt')!r}")
        return False

    return parse_timestamp(now) - created_at > timedelta(hours=timeout_hours)


class TimeoutSweeper:
    """Finds and deletes stories stuck in a generating state."""

    def __init__(
        self,
        repository: StoryRepository,
        timeout_hours: int = DEFAULT_TIMEOUT_HOURS,
        blob_store: Optional[BlobStore] = None,
    ):
        self.repository = repository
        self.timeout_hours = timeout_hours
        self.blob_store = blob_store

    def _delete(self, story_id: str) -> None:
        if self.blob_store is not None:
            try:
                self.blob_store.delete_story_images(story_id)
            except Exception as e:
                # Orphaned blobs are tolerated; the record still goes
                logger.warning(f"Could not delete images for timed-out story {story_id}: {e}")
        self.repository.delete(story_id)

    def sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Delete every timed-out story.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            Summary with ``message``, ``deletedCount``, ``totalProcessed`` and
            a per-story ``results`` list

        Raises:
            Exception: Only if the stories cannot be listed
        """
        now = parse_timestamp(now) if now is not None else datetime.now(timezone.utc)
        stories = self.repository.list()

        stuck = [story for story in stories if is_story_timed_out(story, now, self.timeout_hours)]
        logger.info(f"Found {len(stuck)} timed-out stories out of {len(stories)}")

        results: List[Dict[str, Any]] = []
        deleted_count = 0
        for story in stuck:
            story_id = story.get("id")
            entry = {
                "id": story_id,
                "title": story.get("title"),
                "status": story.get("status"),
                "createdAt": story.get("createdAt"),
            }
            try:
                self._delete(story_id)
                entry["result"] = "deleted"
                deleted_count += 1
                logger.info(f"Deleted timed-out story {story_id} (status {story.get('status')})")
            except Exception as e:
                entry["result"] = "error"
                entry["error"] = str(e)
                logger.error(f"Error deleting timed-out story {story_id}: {e}")
            results.append(entry)

        return {
            "message": f"Cleaned up {deleted_count} timed out stories",
            "deletedCount": deleted_count,
            "totalProcessed": len(stuck),
            "results": results,
        }
