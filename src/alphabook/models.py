"""
Story data model.

The persisted record is a flat mapping of camelCase fields (the wire format
the web client polls). ``storyContent`` and ``images`` travel inside that
record as JSON strings; the pydantic models here are the typed view of them
and the helpers below convert between the two without ever crashing on
malformed or legacy values.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

DEFAULT_MORAL = "Learning the alphabet is fun and helps us discover new words!"


class StoryStatus(str, Enum):
    """Lifecycle states of a story record."""

    GENERATING = "generating"
    GENERATING_STORY = "generating_story"
    GENERATING_IMAGES = "generating_images"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StoryStatus.COMPLETE, StoryStatus.FAILED)


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"


# Forward order of the non-failure path; FAILED is reachable from any
# non-terminal state.
_STATUS_ORDER = [
    StoryStatus.GENERATING,
    StoryStatus.GENERATING_STORY,
    StoryStatus.GENERATING_IMAGES,
    StoryStatus.COMPLETE,
]


def can_transition(current: Any, target: Any) -> bool:
    """
    Check whether a status change is allowed.

    Only the next step along the forward path, or a jump to ``failed`` from a
    non-terminal state, is legal. Terminal states never change.

    Args:
        current: Current status (StoryStatus or its string value)
        target: Requested status

    Returns:
        True if the transition is legal
    """
    try:
        current = StoryStatus(current)
        target = StoryStatus(target)
    except ValueError:
        return False

    if current.is_terminal:
        return False
    if target is StoryStatus.FAILED:
        return True
    return _STATUS_ORDER.index(target) == _STATUS_ORDER.index(current) + 1


class StoryPage(BaseModel):
    """A single alphabet page: narrative text plus the prompt for its illustration."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    image_prompt: str = Field(..., alias="imagePrompt")


class StoryContent(BaseModel):
    """The generated narrative persisted under ``storyContent``."""

    title: str
    pages: List[StoryPage] = Field(..., min_length=1)
    moral: str = DEFAULT_MORAL

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), ensure_ascii=False)


class Story(BaseModel):
    """
    Typed view of a persisted story record.

    Built from a raw record with ``Story.from_record``; the raw record stays
    the source of truth for storage.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    prompt: str
    age: str
    visibility: Visibility = Visibility.PUBLIC
    status: StoryStatus
    letter_count: Optional[int] = Field(None, alias="letterCount")
    story_content: Optional[StoryContent] = Field(None, alias="storyContent")
    images: Optional[List[str]] = None
    error: Optional[str] = None
    created_at: str = Field(..., alias="createdAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")
    deletion_token: Optional[str] = Field(None, alias="deletionToken", exclude=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Story":
        data = dict(record)
        data["storyContent"] = parse_story_content(record.get("storyContent"))
        data["images"] = parse_images(record.get("images"))
        if data.get("letterCount") in ("", None):
            data["letterCount"] = None
        return cls.model_validate(data)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize for readers: deserialized content, no deletion token."""
        return self.model_dump(by_alias=True, mode="json")


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. A trailing ``Z`` (as written by
    JavaScript's ``toISOString``) is accepted. Returns None when unparsable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_story_content(raw: Any) -> Optional[StoryContent]:
    """
    Deserialize a ``storyContent`` value.

    Accepts a JSON string or an already-decoded mapping. Anything that does
    not decode to a valid StoryContent is treated as absent.
    """
    if raw is None or raw == "":
        return None
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return StoryContent.model_validate(data)
    except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
        logger.warning(f"Ignoring malformed storyContent: {e}")
        return None


def parse_images(raw: Any) -> Optional[List[str]]:
    """Deserialize an ``images`` value; malformed input is treated as absent."""
    if raw is None or raw == "":
        return None
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Ignoring malformed images list: {e}")
        return None
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        logger.warning("Ignoring images value that is not a list of strings")
        return None
    return data


def serialize_images(images: List[str]) -> str:
    return json.dumps(list(images))
