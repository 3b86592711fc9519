"""
Model provider factory.

Creates the text and image providers from configuration and caches one
default instance of each per process.
"""

import logging
from typing import Optional

from .base import BaseImageClient, BaseLLMClient
from .gemini import GeminiImageProvider, GeminiProvider

logger = logging.getLogger(__name__)

_default_provider: Optional[BaseLLMClient] = None
_default_image_provider: Optional[BaseImageClient] = None


def create_provider(provider_name: Optional[str] = None, **kwargs) -> BaseLLMClient:
    """
    Create a text provider instance.

    Args:
        provider_name: Name of provider to create ('gemini' or None for the default)
        **kwargs: Provider-specific configuration (api_key, model_name, temperature, timeout)

    Returns:
        BaseLLMClient instance

    Raises:
        ValueError: If provider_name is invalid or provider cannot be created
    """
    from ..config import get_config

    config = get_config()
    provider_name = (provider_name or "gemini").lower()
    if provider_name != "gemini":
        raise ValueError(
            f"Unknown LLM provider: {provider_name}. "
            f"Supported providers: gemini"
        )
    return GeminiProvider(
        api_key=kwargs.get("api_key") or config.GOOGLE_API_KEY or None,
        model_name=kwargs.get("model_name", config.TEXT_MODEL),
        temperature=kwargs.get("temperature", 0.7),
        timeout=kwargs.get("timeout", config.MODEL_TIMEOUT_SECONDS),
    )


def create_image_provider(**kwargs) -> BaseImageClient:
    """Create the image provider from configuration (kwargs override it)."""
    from ..config import get_config

    config = get_config()
    return GeminiImageProvider(
        api_key=kwargs.get("api_key") or config.GOOGLE_API_KEY or None,
        model_name=kwargs.get("model_name", config.IMAGE_MODEL),
        timeout=kwargs.get("timeout", config.MODEL_TIMEOUT_SECONDS),
    )


def get_default_provider() -> BaseLLMClient:
    """Get or create the default text provider instance."""
    global _default_provider

    if _default_provider is None:
        _default_provider = create_provider()
        logger.info(f"Created default LLM provider: {type(_default_provider).__name__}")

    return _default_provider


def get_default_image_provider() -> BaseImageClient:
    """Get or create the default image provider instance."""
    global _default_image_provider

    if _default_image_provider is None:
        _default_image_provider = create_image_provider()
        logger.info(f"Created default image provider: {type(_default_image_provider).__name__}")

    return _default_image_provider


def reset_default_provider() -> None:
    """
    Reset the default provider instances.

    This is useful for testing or when configuration changes.
    """
    global _default_provider, _default_image_provider
    _default_provider = None
    _default_image_provider = None
    logger.info("Reset default model providers")
