"""
Model provider implementations.

Currently supports Google Gemini for both structured text (GeminiProvider)
and illustrations (GeminiImageProvider).
"""

from .base import BaseLLMClient, BaseImageClient, ConversationTurn
from .gemini import GeminiProvider, GeminiImageProvider
from .factory import (
    create_provider,
    create_image_provider,
    get_default_provider,
    get_default_image_provider,
    reset_default_provider,
)

__all__ = [
    "BaseLLMClient",
    "BaseImageClient",
    "ConversationTurn",
    "GeminiProvider",
    "GeminiImageProvider",
    "create_provider",
    "create_image_provider",
    "get_default_provider",
    "get_default_image_provider",
    "reset_default_provider",
]
