"""
Google Gemini provider implementations.

All Gemini-specific code is isolated here. Text generation uses the
``google-generativeai`` SDK in JSON mode with a response schema; image
generation uses the ``google-genai`` SDK, whose models can return inline
image parts.
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple

import google.generativeai as genai  # type: ignore[import-untyped]
from google import genai as genai_sdk
from google.genai import types as genai_types

from .base import BaseImageClient, BaseLLMClient, ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gemini-2.0-flash-lite"
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-exp"
DEFAULT_TIMEOUT_SECONDS = 120.0


def _resolve_api_key(api_key: Optional[str]) -> str:
    api_key = api_key or os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise ValueError("GOOGLE_API_KEY environment variable is required")
    return api_key


class GeminiProvider(BaseLLMClient):
    """
    Structured-output text generation with Gemini.

    Each call is a single attempt bounded by ``timeout`` seconds; retry
    policy belongs to the caller.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_TEXT_MODEL,
        temperature: float = 0.7,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key (if None, uses GOOGLE_API_KEY env var)
            model_name: Model name (default: gemini-2.0-flash-lite)
            temperature: Generation temperature (default: 0.7)
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If no API key is available
        """
        self.api_key = _resolve_api_key(api_key)
        genai.configure(api_key=self.api_key)
        self._model_name = model_name.replace("models/", "")
        self.temperature = temperature
        self.timeout = timeout
        logger.info(f"Initialized GeminiProvider with model: {self._model_name}")

    @property
    def model_name(self) -> str:
        return self._model_name

    def generate_json(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        start_time = time.time()
        model = genai.GenerativeModel(self._model_name, system_instruction=system_prompt)
        generation_config = genai.GenerationConfig(
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=response_schema,
        )

        try:
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": self.timeout},
            )
        except (ConnectionError, TimeoutError, OSError) as e:
            logger.error(f"Network error generating content with Gemini: {e}", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Error generating content with Gemini: {e}", exc_info=True)
            raise

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the response has no usable candidate
            finish_reason = "UNKNOWN"
            if getattr(response, "candidates", None):
                finish_reason = getattr(response.candidates[0], "finish_reason", "UNKNOWN")
            raise ValueError(f"Gemini returned no text (finish_reason={finish_reason}): {e}")

        if not text or not text.strip():
            raise ValueError("Gemini returned an empty response")

        logger.debug(
            f"Gemini JSON generation finished in {time.time() - start_time:.2f}s "
            f"({len(text)} chars)"
        )
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Gemini returned invalid JSON: {e}")


class GeminiImageProvider(BaseImageClient):
    """Image generation with a Gemini model that supports image output."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_IMAGE_MODEL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.api_key = _resolve_api_key(api_key)
        self._model_name = model_name
        self.timeout = timeout
        self._client = genai_sdk.Client(
            api_key=self.api_key,
            http_options=genai_types.HttpOptions(timeout=int(timeout * 1000)),
        )
        logger.info(f"Initialized GeminiImageProvider with model: {self._model_name}")

    @property
    def model_name(self) -> str:
        return self._model_name

    @staticmethod
    def _build_contents(turns: List[ConversationTurn]) -> List[genai_types.Content]:
        contents = []
        for turn in turns:
            parts = [genai_types.Part.from_text(text=turn.text)]
            if turn.image is not None:
                image_bytes, mime_type = turn.image
                parts.append(genai_types.Part.from_bytes(data=image_bytes, mime_type=mime_type))
            contents.append(genai_types.Content(role=turn.role, parts=parts))
        return contents

    @staticmethod
    def _extract_image(response: genai_types.GenerateContentResponse) -> Optional[Tuple[bytes, str]]:
        candidate = (response.candidates or [None])[0]
        if candidate is None or not candidate.content or not candidate.content.parts:
            return None
        for part in candidate.content.parts:
            inline_data = part.inline_data
            if inline_data and inline_data.data:
                mime_type = inline_data.mime_type or "image/png"
                if mime_type.startswith("image/"):
                    return inline_data.data, mime_type
        return None

    def generate_image(self, turns: List[ConversationTurn]) -> Optional[Tuple[bytes, str]]:
        start_time = time.time()
        response = self._client.models.generate_content(
            model=self._model_name,
            contents=self._build_contents(turns),
            config=genai_types.GenerateContentConfig(
                response_modalities=["TEXT", "IMAGE"],
            ),
        )
        image = self._extract_image(response)
        if image is None:
            logger.warning(f"Gemini image model {self._model_name} returned no image data")
        else:
            logger.debug(f"Gemini image generated in {time.time() - start_time:.2f}s ({len(image[0])} bytes)")
        return image
