"""
Story generation pipeline.

Drives one story record from ``generating`` to ``complete`` (or ``failed``):

1. Transition to ``generating_story``.
2. Generate the narrative; on success persist ``storyContent`` together
   with the ``generating_images`` transition.
3. Generate one illustration per page, strictly in page order, each
   conditioned on up to three earlier successful images, checkpointing the
   growing ``images`` list after every page.
4. Persist the final images, ``complete`` and ``completedAt``.

The pipeline is the failure boundary for the job: a text-stage or
persistence failure marks the story ``failed`` with a message, while a
single image failure only substitutes a placeholder for that page.
"""

import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from .image_generator import ImageGenerator
from .models import StoryStatus, can_transition, serialize_images, utcnow_iso
from .settings import ALPHABET_LETTERS_COUNT, SettingsStore
from .story_generator import StoryTextGenerator
from .utils.alphabet import get_alphabet_subset, is_placeholder, placeholder_for_letter
from .utils.errors import InvalidTransitionError, StoryNotFoundError
from .utils.repository import StoryRepository

logger = logging.getLogger(__name__)

CONTEXT_WINDOW_SIZE = 3


class StoryGenerationPipeline:
    """Runs the generation job for a single story."""

    def __init__(
        self,
        repository: StoryRepository,
        text_generator: StoryTextGenerator,
        image_generator: ImageGenerator,
        settings_store: Optional[SettingsStore] = None,
    ):
        self.repository = repository
        self.text_generator = text_generator
        self.image_generator = image_generator
        self.settings_store = settings_store
        self._status: Optional[StoryStatus] = None

    def _resolve_letter_count(self, letter_count: Optional[int]) -> int:
        if letter_count is not None:
            return letter_count
        if self.settings_store is None:
            raise ValueError("No letter count given and no settings store configured")
        return self.settings_store.get(ALPHABET_LETTERS_COUNT)

    def _update(self, story_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Persist fields, enforcing the status state machine when status changes."""
        target = fields.get("status")
        if target is not None:
            if not can_transition(self._status, target):
                raise InvalidTransitionError(str(getattr(self._status, "value", self._status)), str(target))
            fields = dict(fields, status=StoryStatus(target).value)
        record = self.repository.update(story_id, fields)
        if target is not None:
            self._status = StoryStatus(target)
        return record

    def run(
        self,
        story_id: str,
        title: str,
        prompt: str,
        age_range: str,
        letter_count: Optional[int] = None,
    ) -> None:
        """
        Generate the story and its illustrations.

        Never raises. Once the record has been loaded, every failure outside
        the per-image loop ends with the story marked ``failed``; if it cannot
        be loaded the job exits without writing.

        Args:
            story_id: Story to generate (must exist in ``generating``)
            title: Story title
            prompt: Theme supplied by the user
            age_range: Target age range
            letter_count: Letter count captured when the story was created;
                read from the settings store when omitted
        """
        try:
            record = self.repository.get(story_id)
        except Exception as e:
            # Nothing was written; the sweeper reclaims the record
            logger.error(f"Could not load story {story_id}; skipping generation: {e}", exc_info=True)
            return
        if record is None:
            logger.warning(f"Story {story_id} no longer exists; skipping generation")
            return
        try:
            self._status = StoryStatus(record.get("status"))
        except ValueError:
            logger.error(f"Story {story_id} has unknown status {record.get('status')!r}; skipping generation")
            return
        if self._status is not StoryStatus.GENERATING:
            logger.warning(f"Story {story_id} is already '{self._status.value}'; skipping generation")
            return

        try:
            self._generate(story_id, title, prompt, age_range, letter_count)
        except Exception as e:
            logger.error(f"Story generation failed for {story_id}: {e}", exc_info=True)
            self._mark_failed(story_id, e)

    def _generate(
        self,
        story_id: str,
        title: str,
        prompt: str,
        age_range: str,
        letter_count: Optional[int],
    ) -> None:
        count = self._resolve_letter_count(letter_count)
        letters = get_alphabet_subset(count)

        self._update(story_id, {"status": StoryStatus.GENERATING_STORY})
        logger.info(f"Generating {count}-letter story {story_id}: '{title}'")

        content = self.text_generator.generate(title, prompt, age_range, count, letters)

        # storyContent only ever becomes visible together with generating_images
        self._update(story_id, {
            "status": StoryStatus.GENERATING_IMAGES,
            "storyContent": content.to_json(),
        })
        logger.info(f"Story text ready for {story_id}; generating {len(content.pages)} image(s)")

        images: List[str] = []
        context: Deque[Tuple[str, str]] = deque(maxlen=CONTEXT_WINDOW_SIZE)

        for index, page in enumerate(content.pages):
            try:
                image = self.image_generator.generate(
                    page.image_prompt,
                    story_id,
                    index,
                    [url for url, _ in context],
                    [image_prompt for _, image_prompt in context],
                )
                if not is_placeholder(image):
                    context.append((image, page.image_prompt))
            except Exception as e:
                logger.error(f"Error generating image {index + 1} for story {story_id}: {e}", exc_info=True)
                image = placeholder_for_letter(letters[index])

            images.append(image)
            self._update(story_id, {"images": serialize_images(images)})
            logger.info(f"Story {story_id}: image {index + 1}/{len(content.pages)} checkpointed")

        self._update(story_id, {
            "status": StoryStatus.COMPLETE,
            "images": serialize_images(images),
            "completedAt": utcnow_iso(),
        })
        logger.info(f"Story {story_id} complete")

    def _mark_failed(self, story_id: str, error: Exception) -> None:
        message = str(error) or type(error).__name__
        try:
            self._update(story_id, {"status": StoryStatus.FAILED, "error": message})
        except (StoryNotFoundError, InvalidTransitionError) as e:
            logger.warning(f"Could not mark story {story_id} as failed: {e}")
        except Exception as e:
            # Record stays non-terminal and is reclaimed by the timeout sweeper
            logger.error(f"Could not persist failure for story {story_id}: {e}", exc_info=True)


def create_default_pipeline() -> StoryGenerationPipeline:
    """Build a pipeline wired to the configured providers and stores."""
    from .providers import get_default_image_provider, get_default_provider
    from .settings import get_settings_store
    from .utils.blob_storage import get_default_blob_store
    from .utils.repository import create_story_repository

    return StoryGenerationPipeline(
        repository=create_story_repository(),
        text_generator=StoryTextGenerator(get_default_provider()),
        image_generator=ImageGenerator(get_default_image_provider(), get_default_blob_store()),
        settings_store=get_settings_store(),
    )
