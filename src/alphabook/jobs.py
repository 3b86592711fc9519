"""
Background job tasks for Alphabook.

Entry points executed outside the request that created the story, either by
an RQ worker or by a daemon thread (see services.job_service). Each job
builds its own collaborators from configuration so it can run in a separate
worker process.
"""

import logging
from typing import Any, Dict, Optional

from .config import get_config
from .pipeline import create_default_pipeline
from .sweeper import TimeoutSweeper
from .utils.blob_storage import get_default_blob_store
from .utils.repository import create_story_repository

logger = logging.getLogger(__name__)


def generate_story_job(
    story_id: str,
    title: str,
    prompt: str,
    age_range: str,
    letter_count: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Background job for generating a complete alphabet story.

    The pipeline records failures on the story itself, so this job only
    fails when the pipeline cannot be built at all.

    Args:
        story_id: Story record to advance
        title: Story title
        prompt: Theme supplied by the user
        age_range: Target age range
        letter_count: Letter count captured at creation

    Returns:
        Dict with ``story_id`` and the final ``status`` of the record
    """
    logger.info(f"Starting story generation job for {story_id}")
    pipeline = create_default_pipeline()
    pipeline.run(story_id, title, prompt, age_range, letter_count=letter_count)

    record = pipeline.repository.get(story_id)
    status = record.get("status") if record else None
    logger.info(f"Story generation job for {story_id} finished with status {status}")
    return {"story_id": story_id, "status": status}


def cleanup_timed_out_stories_job() -> Dict[str, Any]:
    """Background job that runs the timeout sweeper once."""
    config = get_config()
    sweeper = TimeoutSweeper(
        create_story_repository(),
        timeout_hours=config.STORY_TIMEOUT_HOURS,
        blob_store=get_default_blob_store(),
    )
    return sweeper.sweep()
