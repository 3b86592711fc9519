"""
Background job service.

Schedules story generation outside the request that created the story:
on an RQ queue when background jobs are enabled, otherwise on a daemon
thread in the web process.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..jobs import generate_story_job

logger = logging.getLogger(__name__)


class JobService:
    """Service for scheduling background jobs."""

    def __init__(
        self,
        use_background_jobs: bool = False,
        job_timeout: str = "30m",
        job_func: Callable[..., Any] = generate_story_job,
        inline: bool = False,
    ):
        """
        Initialize job service.

        Args:
            use_background_jobs: Enqueue on RQ instead of starting a thread
            job_timeout: RQ job timeout (e.g. "30m")
            job_func: Function executed for each story
            inline: Run the job in the calling thread (CLI and tests)
        """
        self.use_background_jobs = use_background_jobs
        self.job_timeout = job_timeout
        self.job_func = job_func
        self.inline = inline

    def enqueue_story_generation(
        self,
        story_id: str,
        title: str,
        prompt: str,
        age_range: str,
        letter_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Schedule generation of a story.

        Returns:
            Dict with ``status`` ("queued", "started" or "finished") and ``job_id``
        """
        kwargs = {
            "story_id": story_id,
            "title": title,
            "prompt": prompt,
            "age_range": age_range,
            "letter_count": letter_count,
        }

        if self.inline:
            self.job_func(**kwargs)
            return {"status": "finished", "job_id": None}

        if self.use_background_jobs:
            from rq_config import get_queue

            queue = get_queue("default")
            job = queue.enqueue(self.job_func, kwargs=kwargs, job_timeout=self.job_timeout)
            logger.info(f"Enqueued story generation job {job.id} for story {story_id}")
            return {"status": "queued", "job_id": job.id}

        thread = threading.Thread(
            target=self._run_in_thread,
            kwargs=kwargs,
            name=f"story-{story_id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Started story generation thread for story {story_id}")
        return {"status": "started", "job_id": thread.name}

    def _run_in_thread(self, **kwargs) -> None:
        try:
            self.job_func(**kwargs)
        except Exception as e:
            # Nothing above a daemon thread would see this
            logger.error(f"Story generation job for {kwargs.get('story_id')} crashed: {e}", exc_info=True)
