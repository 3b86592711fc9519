"""
Utility modules for Alphabook.

Modules:
- alphabet: Letter subsets and placeholder image references
- repository: Story persistence (Redis or JSON files)
- blob_storage: Durable storage for generated images
- errors: API and domain exceptions
- auth: Shared-secret checks
"""

from .alphabet import get_alphabet_subset, placeholder_for_letter, placeholder_for_prompt, is_placeholder
from .repository import (
    StoryRepository,
    RedisStoryRepository,
    FileStoryRepository,
    create_story_repository,
)
from .blob_storage import BlobStore, LocalBlobStore, get_default_blob_store

__all__ = [
    "get_alphabet_subset",
    "placeholder_for_letter",
    "placeholder_for_prompt",
    "is_placeholder",
    "StoryRepository",
    "RedisStoryRepository",
    "FileStoryRepository",
    "create_story_repository",
    "BlobStore",
    "LocalBlobStore",
    "get_default_blob_store",
]
