"""Alphabet helpers and placeholder image references."""

from typing import List
from urllib.parse import quote

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

MIN_LETTERS = 1
MAX_LETTERS = len(ALPHABET)

PLACEHOLDER_PATH = "/placeholder.svg"
PLACEHOLDER_PROMPT_CHARS = 30


def get_alphabet_subset(count: int) -> List[str]:
    """
    Return the first ``count`` letters of the alphabet.

    Args:
        count: Number of letters (1-26)

    Returns:
        List of upper-case letters, e.g. ['A', 'B', 'C'] for 3

    Raises:
        ValueError: If count is outside 1-26
    """
    if not isinstance(count, int) or isinstance(count, bool) or not MIN_LETTERS <= count <= MAX_LETTERS:
        raise ValueError(f"Letter count must be an integer between {MIN_LETTERS} and {MAX_LETTERS}, got {count!r}")
    return list(ALPHABET[:count])


def placeholder_for_prompt(prompt: str) -> str:
    """Placeholder image reference carrying a truncated, URL-quoted prompt."""
    text = quote((prompt or "")[:PLACEHOLDER_PROMPT_CHARS], safe="")
    return f"{PLACEHOLDER_PATH}?height=400&width=600&text={text}"


def placeholder_for_letter(letter: str) -> str:
    """Placeholder image reference for a page whose image call raised."""
    return f"{PLACEHOLDER_PATH}?height=400&width=600&text=Letter+{letter}"


def is_placeholder(image_ref: str) -> bool:
    return PLACEHOLDER_PATH in (image_ref or "")
