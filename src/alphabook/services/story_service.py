"""
Story service for creation, reads and moderation.

The HTTP layer and the CLI both go through this service; it owns request
validation, record creation and scheduling, and the reader-facing views of a
story record.
"""

import logging
import secrets
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..models import (
    Story,
    StoryStatus,
    Visibility,
    parse_images,
    utcnow_iso,
)
from ..settings import ALPHABET_LETTERS_COUNT, SUBMISSIONS_HALTED, SettingsStore
from ..utils.blob_storage import BlobStore
from ..utils.errors import NotFoundError, SubmissionsHaltedError, ValidationError
from ..utils.repository import StoryRepository
from .job_service import JobService

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "A fun alphabet adventure for children"
DEFAULT_AGE_RANGE = "3-8"
MAX_TITLE_LENGTH = 200
MAX_PROMPT_LENGTH = 2000

# Fields never included in list entries
_LIST_EXCLUDED_FIELDS = ("deletionToken", "storyContent", "images")


class CreateStoryRequest(BaseModel):
    """Validated story submission."""

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    prompt: str = Field(DEFAULT_PROMPT, max_length=MAX_PROMPT_LENGTH)
    age: str = Field(DEFAULT_AGE_RANGE, max_length=20)
    visibility: Visibility = Visibility.PUBLIC

    @field_validator("title", "prompt", "age", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("prompt", mode="after")
    @classmethod
    def _default_prompt(cls, value: str) -> str:
        return value or DEFAULT_PROMPT

    @field_validator("age", mode="after")
    @classmethod
    def _default_age(cls, value: str) -> str:
        return value or DEFAULT_AGE_RANGE

    @field_validator("visibility", mode="before")
    @classmethod
    def _coerce_visibility(cls, value):
        # Anything other than "unlisted" is published
        return Visibility.UNLISTED if value == Visibility.UNLISTED.value else Visibility.PUBLIC


def _validation_details(error: PydanticValidationError) -> Dict[str, Any]:
    return {
        "fields": [
            {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
            for item in error.errors()
        ]
    }


class StoryService:
    """Service for story lifecycle operations outside the generation job."""

    def __init__(
        self,
        repository: StoryRepository,
        settings_store: SettingsStore,
        job_service: Optional[JobService] = None,
        blob_store: Optional[BlobStore] = None,
    ):
        """
        Initialize story service.

        Args:
            repository: Story repository
            settings_store: Settings store (halt flag and letter count)
            job_service: Scheduler for generation jobs (a thread-based
                JobService if None)
            blob_store: Blob store holding story images, used on deletion
        """
        self.repository = repository
        self.settings_store = settings_store
        self.job_service = job_service or JobService()
        self.blob_store = blob_store

    def create_story(self, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Validate a submission, persist the story and schedule generation.

        Args:
            data: Raw submission (title, prompt, age, visibility)

        Returns:
            Dict with ``id``, ``status`` and ``letterCount``

        Raises:
            SubmissionsHaltedError: If submissions are switched off
            ValidationError: If the submission is invalid
        """
        if self.settings_store.get(SUBMISSIONS_HALTED):
            logger.info("Rejected story submission: submissions are halted")
            raise SubmissionsHaltedError()

        data = data or {}
        if not isinstance(data.get("title"), str) or not data.get("title", "").strip():
            raise ValidationError("Title is required", details={"field": "title"})

        try:
            request = CreateStoryRequest.model_validate(
                {key: value for key, value in data.items() if value is not None}
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid story submission", details=_validation_details(e))

        letter_count = self.settings_store.get(ALPHABET_LETTERS_COUNT)
        story_id = str(uuid.uuid4())
        record = {
            "id": story_id,
            "title": request.title,
            "prompt": request.prompt,
            "age": request.age,
            "visibility": request.visibility.value,
            "status": StoryStatus.GENERATING.value,
            "letterCount": letter_count,
            "createdAt": utcnow_iso(),
            "deletionToken": secrets.token_hex(16),
        }
        self.repository.create(record)
        logger.info(f"Created story {story_id} '{request.title}' ({letter_count} letters)")

        self.job_service.enqueue_story_generation(
            story_id,
            request.title,
            request.prompt,
            request.age,
            letter_count=letter_count,
        )

        return {"id": story_id, "status": record["status"], "letterCount": letter_count}

    def _get_record(self, story_id: str) -> Dict[str, Any]:
        record = self.repository.get(story_id)
        if not record:
            raise NotFoundError("Story", story_id)
        return record

    def get_story(self, story_id: str) -> Dict[str, Any]:
        """
        Get the reader view of a story.

        ``storyContent`` and ``images`` are deserialized (malformed values
        become null) and the deletion token is never included.

        Raises:
            NotFoundError: If story not found
        """
        return Story.from_record(self._get_record(story_id)).to_public_dict()

    def list_stories(self, include_unlisted: bool = False) -> List[Dict[str, Any]]:
        """
        List stories for the gallery, newest first.

        Failed stories are never listed; unlisted ones only when requested.
        Each entry carries a ``previewImage`` (first image or None) instead of
        the full content.
        """
        stories = []
        for record in self.repository.list():
            if record.get("status") == StoryStatus.FAILED.value:
                continue
            if not include_unlisted and record.get("visibility") == Visibility.UNLISTED.value:
                continue

            images = parse_images(record.get("images"))
            entry = {k: v for k, v in record.items() if k not in _LIST_EXCLUDED_FIELDS}
            entry["previewImage"] = images[0] if images else None
            stories.append(entry)
        return stories

    def update_visibility(self, story_id: str, visibility: Any) -> Dict[str, Any]:
        """
        Change a story's visibility.

        Raises:
            NotFoundError: If story not found
            ValidationError: If visibility is not public or unlisted
        """
        try:
            value = Visibility(visibility)
        except ValueError:
            raise ValidationError(
                "Visibility must be 'public' or 'unlisted'",
                details={"field": "visibility"}
            )

        self._get_record(story_id)
        record = self.repository.update(story_id, {"visibility": value.value})
        logger.info(f"Story {story_id} visibility set to {value.value}")
        return Story.from_record(record).to_public_dict()

    def delete_story(self, story_id: str) -> None:
        """
        Delete a story and its images.

        Image deletion is best-effort: orphaned blobs are logged and the
        record is still removed.

        Raises:
            NotFoundError: If story not found
        """
        self._get_record(story_id)

        if self.blob_store is not None:
            try:
                removed = self.blob_store.delete_story_images(story_id)
                logger.info(f"Deleted {removed} image(s) for story {story_id}")
            except Exception as e:
                logger.warning(f"Could not delete images for story {story_id}: {e}")

        if not self.repository.delete(story_id):
            raise NotFoundError("Story", story_id)
        logger.info(f"Deleted story {story_id}")
