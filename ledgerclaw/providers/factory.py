"""
Provider factory for LLM provider instantiation.

Single entry point to instantiate any provider by name, backed by a registry
so additional providers can be plugged in without touching the gateway.
"""

import logging
from typing import Dict, List, Optional, Type

from .base import LLMProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Registry of LLM provider classes.

    Instances are not cached here: the inference gateway owns the provider
    objects for the lifetime of one process context.
    """

    _providers: Dict[str, Type[LLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type[LLMProvider]) -> None:
        """
        Register a provider class.

        Args:
            name: Provider identifier (e.g., 'ollama', 'openai')
            provider_class: LLMProvider subclass
        """
        cls._providers[name] = provider_class
        logger.debug(f"Registered provider: {name}")

    @classmethod
    def create(cls, name: str, config: Optional[Dict] = None) -> LLMProvider:
        """
        Create a provider instance.

        Args:
            name: Provider name (ollama, openai, anthropic, gemini)
            config: Provider-specific configuration

        Returns:
            LLMProvider instance

        Raises:
            ValueError: If provider name is unknown
            ConfigurationError: If a cloud provider has no credentials
        """
        if name not in cls._providers:
            available = list(cls._providers.keys())
            raise ValueError(f"Unknown provider: '{name}'. Available: {available}")

        instance = cls._providers[name](config or {})
        logger.debug(f"Created provider instance: {name}")
        return instance

    @classmethod
    def list_providers(cls) -> List[str]:
        """List all registered provider names."""
        return list(cls._providers.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        """Check if a provider is registered."""
        return name in cls._providers

    @classmethod
    def unregister(cls, name: str) -> bool:
        """
        Unregister a provider (mainly for testing).

        Returns:
            True if provider was unregistered
        """
        return cls._providers.pop(name, None) is not None


def _register_builtin_providers():
    from .anthropic_provider import AnthropicProvider
    from .gemini_provider import GeminiProvider
    from .ollama_provider import OllamaProvider
    from .openai_provider import OpenAIProvider

    ProviderFactory.register("ollama", OllamaProvider)
    ProviderFactory.register("openai", OpenAIProvider)
    ProviderFactory.register("anthropic", AnthropicProvider)
    ProviderFactory.register("gemini", GeminiProvider)


_register_builtin_providers()
