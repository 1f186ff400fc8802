"""
LLM Providers package for LedgerClaw.

This package provides a unified generation interface for:
- Ollama: Local LLM inference (free, privacy-focused, default)
- OpenAI: GPT-4o family (cloud)
- Anthropic: Claude models (cloud)
- Gemini: Google's Gemini models (cloud)

Use the ProviderFactory for creating provider instances:
    from ledgerclaw.providers import ProviderFactory
    provider = ProviderFactory.create("ollama", config)
"""

from .anthropic_provider import AnthropicProvider
from .base import InferenceOptions, InferenceResponse, LLMProvider
from .factory import ProviderFactory
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "InferenceOptions",
    "InferenceResponse",
    "LLMProvider",
    "ProviderFactory",
    "OllamaProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
]
