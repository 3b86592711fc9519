"""
Service layer for Alphabook.

Services hold the business logic shared by the Flask route handlers and the
CLI, independent of the HTTP layer.
"""

from .job_service import JobService
from .story_service import StoryService

__all__ = [
    'JobService',
    'StoryService',
]
