"""
Provider-neutral interfaces for the text and image models.

The story and image generators only talk to these interfaces, which keeps
the Google SDKs isolated in their own modules and lets tests substitute
simple fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class ConversationTurn:
    """One message of a multi-turn image request."""

    role: str  # "user" or "model"
    text: str
    image: Optional[Tuple[bytes, str]] = None  # (bytes, mime_type)


class BaseLLMClient(ABC):
    """Interface for structured-output text models."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the model in use."""

    @abstractmethod
    def generate_json(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        """
        Generate a JSON value constrained by a response schema.

        Args:
            prompt: User prompt
            response_schema: OpenAPI-style schema the output must follow
            system_prompt: Optional system instruction

        Returns:
            The decoded JSON value

        Raises:
            Exception: If the call fails, times out, or the output is not JSON
        """


class BaseImageClient(ABC):
    """Interface for image-capable models."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the model in use."""

    @abstractmethod
    def generate_image(self, turns: List[ConversationTurn]) -> Optional[Tuple[bytes, str]]:
        """
        Run a (possibly multi-turn) image request.

        Args:
            turns: Conversation, oldest first; the last turn is the request

        Returns:
            (image_bytes, mime_type) of the first image in the response, or
            None if the model returned no image

        Raises:
            Exception: If the call itself fails or times out
        """
