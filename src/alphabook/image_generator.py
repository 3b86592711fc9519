"""
Illustration generation for story pages.

``ImageGenerator.generate`` never raises and never returns an empty value:
every failure (no image in the response, upload error, bad URL, exception)
degrades to a placeholder reference.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests

from .providers.base import BaseImageClient, ConversationTurn
from .utils.alphabet import placeholder_for_prompt
from .utils.blob_storage import BlobStore, decode_data_url

logger = logging.getLogger(__name__)

MAX_CONTEXT_IMAGES = 3
PRIOR_IMAGE_FETCH_TIMEOUT = 15

CONSISTENCY_REQUEST = (
    "Please maintain character appearance, art style, and color palette consistency "
    "with these previous illustrations when creating the next image."
)
CONSISTENCY_ACK = (
    "I'll ensure the characters, art style, and colors remain consistent with the previous illustrations."
)
IMAGE_ACK = "I've received this image and will maintain visual consistency with it."


def is_hosted_url(url: str) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_page_request(prompt: str, with_context: bool) -> str:
    if with_context:
        return (
            f"Generate an illustration for a children's ABC story: {prompt}. Make it colorful, "
            "child-friendly, and in a consistent style with any previous images. Include diverse "
            "characters with different ethnicities, genders, and abilities. Ensure representation "
            "is natural and authentic."
        )
    return (
        f"Generate an illustration for a children's ABC story: {prompt}. Make it colorful, "
        "child-friendly, and include diverse characters with different ethnicities, genders, and "
        "abilities. Ensure representation is natural and authentic."
    )


class ImageGenerator:
    """Generates, stores and returns the illustration for one page."""

    def __init__(self, client: BaseImageClient, blob_store: BlobStore):
        self.client = client
        self.blob_store = blob_store

    def _load_prior_image(self, image_ref: str) -> Optional[Tuple[bytes, str]]:
        """Resolve a prior image reference to (bytes, mime_type)."""
        if image_ref.startswith("data:"):
            try:
                return decode_data_url(image_ref)
            except ValueError as e:
                logger.warning(f"Skipping undecodable prior image: {e}")
                return None

        stored = self.blob_store.read(image_ref)
        if stored is not None:
            return stored

        if is_hosted_url(image_ref):
            try:
                response = requests.get(image_ref, timeout=PRIOR_IMAGE_FETCH_TIMEOUT)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.warning(f"Could not fetch prior image {image_ref}: {e}")
                return None
            mime_type = response.headers.get("Content-Type", "image/png").split(";")[0]
            if not mime_type.startswith("image/"):
                logger.warning(f"Prior image {image_ref} has non-image content type {mime_type}")
                return None
            return response.content, mime_type

        logger.warning(f"Skipping prior image with unsupported reference: {image_ref[:60]}")
        return None

    def build_turns(
        self,
        prompt: str,
        prior_images: Sequence[str],
        prior_prompts: Sequence[str],
    ) -> List[ConversationTurn]:
        """
        Build the conversation for one page.

        Up to the three most recent prior (image, prompt) pairs are replayed
        oldest first, each acknowledged by the model, followed by a
        consistency instruction and the page request.
        """
        turns: List[ConversationTurn] = []

        count = min(MAX_CONTEXT_IMAGES, len(prior_images))
        recent_images = list(prior_images)[-count:] if count else []
        recent_prompts = list(prior_prompts)[-count:] if count else []

        for i, image_ref in enumerate(recent_images):
            image = self._load_prior_image(image_ref)
            if image is None:
                continue
            image_prompt = recent_prompts[i] if i < len(recent_prompts) else "Previous illustration"
            turns.append(ConversationTurn(role="user", text=f"Previous page prompt: {image_prompt}", image=image))
            turns.append(ConversationTurn(role="model", text=IMAGE_ACK))

        with_context = bool(turns)
        if with_context:
            turns.append(ConversationTurn(role="user", text=CONSISTENCY_REQUEST))
            turns.append(ConversationTurn(role="model", text=CONSISTENCY_ACK))

        turns.append(ConversationTurn(role="user", text=build_page_request(prompt, with_context)))
        return turns

    def generate(
        self,
        prompt: str,
        story_id: str,
        page_index: int,
        prior_images: Optional[Sequence[str]] = None,
        prior_prompts: Optional[Sequence[str]] = None,
    ) -> str:
        """
        Generate the illustration for a page.

        Args:
            prompt: Image prompt for this page
            story_id: Owning story (blob key)
            page_index: Page index (blob key)
            prior_images: Earlier successful image URLs, oldest first
            prior_prompts: Prompts matching ``prior_images``

        Returns:
            Durable image URL, or a placeholder reference on any failure
        """
        placeholder = placeholder_for_prompt(prompt)
        try:
            turns = self.build_turns(prompt, prior_images or [], prior_prompts or [])
            logger.info(
                f"Generating image for story {story_id} page {page_index} "
                f"with {(len(turns) - 1) // 2} context turn(s)"
            )

            image = self.client.generate_image(turns)
            if image is None:
                logger.warning(f"No image returned for story {story_id} page {page_index}")
                return placeholder

            image_bytes, mime_type = image
            url = self.blob_store.upload(image_bytes, story_id, page_index, mime_type=mime_type)
            if not is_hosted_url(url):
                logger.warning(f"Upload for story {story_id} page {page_index} returned unusable URL: {url!r}")
                return placeholder
            return url
        except Exception as e:
            logger.error(f"Error generating image for story {story_id} page {page_index}: {e}", exc_info=True)
            return placeholder
