"""
Alphabet story text generation.

Turns a (title, theme, age range, letters) request into a validated
StoryContent with one page per letter. A single model call is made; any
call error or schema mismatch raises StoryGenerationError and nothing is
retried here.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .models import DEFAULT_MORAL, StoryContent, StoryPage
from .providers.base import BaseLLMClient
from .utils.errors import StoryGenerationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a children's ABC content creator. Create engaging, educational content that helps "
    "children learn the alphabet. This can be in the form of flowing narratives with consistent "
    "characters and plot, or thematic explorations that connect concepts to each letter. Always make "
    "the title the central theme of your content, adapting your format to best suit the title and theme."
)

# Schema handed to the model (OpenAPI subset understood by Gemini)
STORY_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "pages": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "letter": {"type": "STRING"},
                    "text": {"type": "STRING"},
                    "imagePrompt": {"type": "STRING"},
                },
                "required": ["letter", "text", "imagePrompt"],
            },
        },
        "moral": {"type": "STRING"},
    },
    "required": ["pages", "moral"],
}


class GeneratedPage(BaseModel):
    letter: str
    text: str = Field(..., min_length=1)
    imagePrompt: str = Field(..., min_length=1)


class GeneratedStory(BaseModel):
    """Shape the model must return."""

    pages: List[GeneratedPage] = Field(..., min_length=1)
    moral: str


def build_story_prompt(title: str, prompt: str, age_range: str, letter_count: int, letters: List[str]) -> str:
    """Build the user prompt for an alphabet story."""
    return f"""Create a children's ABC content titled "{title}" for ages {age_range} about: {prompt}.

IMPORTANT: The content MUST be about the title "{title}" and incorporate this title as the central theme.

The content should progress through the first {letter_count} letters of the alphabet ({", ".join(letters)}).
Produce exactly {letter_count} pages, one per letter, in that order.

Each page should:
1. Start with a sentence or phrase beginning with the corresponding letter ({", ".join(letters[:4])}, etc.)
2. Relate to the overall theme of "{title}"
3. Be engaging and educational for children in the {age_range} age range

IMPORTANT: Choose the most appropriate format based on the title and theme:

- If the title suggests a narrative (like an adventure or journey), create a flowing story where each page continues from the previous one with consistent characters and plot progression.
  Example narrative:
  - "A long time ago, Max was looking for friends in the magical forest..."
  - "Before too long, he spotted a small rabbit hiding behind a tree..."

- If the title suggests a collection or concept (like "Animals of Africa" or "Colors"), create thematic content where each page explores a different aspect of the theme while still connecting to the overall concept.
  Example collection:
  - "Amazing elephants have the largest ears of any animal in Africa..."
  - "Beautiful zebras have black and white stripes that help them hide from predators..."

Make the content engaging, age-appropriate, and include educational value or a moral lesson when appropriate.
For each page, also create a detailed image prompt that captures the key moment or concept on that page.
The image prompts should be detailed enough for an AI image generator to create a consistent illustration."""


def _first_letter(text: str) -> Optional[str]:
    for char in text:
        if char.isalpha():
            return char.upper()
    return None


class StoryTextGenerator:
    """Generates the narrative for an alphabet storybook."""

    def __init__(self, client: BaseLLMClient):
        self.client = client

    def generate(
        self,
        title: str,
        prompt: str,
        age_range: str,
        letter_count: int,
        letters: List[str],
    ) -> StoryContent:
        """
        Generate and validate the story pages.

        Args:
            title: Story title, kept as the throughline
            prompt: Theme / description supplied by the user
            age_range: Target age range, e.g. "3-8"
            letter_count: Number of pages required
            letters: Target letters, one per page, in order

        Returns:
            StoryContent with exactly ``letter_count`` pages

        Raises:
            StoryGenerationError: If the model call fails or the response
                does not match the required structure
        """
        if len(letters) != letter_count:
            raise StoryGenerationError(
                f"Expected {letter_count} target letters, got {len(letters)}"
            )

        user_prompt = build_story_prompt(title, prompt, age_range, letter_count, letters)
        logger.info(f"Requesting {letter_count}-page story '{title}' from {self.client.model_name}")

        try:
            raw = self.client.generate_json(
                user_prompt,
                response_schema=STORY_RESPONSE_SCHEMA,
                system_prompt=SYSTEM_PROMPT,
            )
        except Exception as e:
            raise StoryGenerationError(f"Error generating story text: {e}") from e

        try:
            generated = GeneratedStory.model_validate(raw)
        except PydanticValidationError as e:
            raise StoryGenerationError(
                f"Story response did not match the expected schema: {e.error_count()} error(s)"
            ) from e

        if len(generated.pages) != letter_count:
            raise StoryGenerationError(
                f"Story has {len(generated.pages)} pages, expected {letter_count}"
            )

        for index, (page, letter) in enumerate(zip(generated.pages, letters)):
            if _first_letter(page.text) != letter.upper():
                raise StoryGenerationError(
                    f"Page {index + 1} should begin with '{letter}' but begins with "
                    f"'{_first_letter(page.text) or '?'}'"
                )

        return StoryContent(
            title=title,
            pages=[StoryPage(text=page.text, image_prompt=page.imagePrompt) for page in generated.pages],
            moral=generated.moral.strip() or DEFAULT_MORAL,
        )
