"""
Base provider interface for LLM inference.

This module defines the abstract base class and the request/response data
structures shared by all LLM providers (Ollama, OpenAI, Anthropic, Gemini),
plus the HTTP helper that maps transport failures onto the error taxonomy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..utils.errors import InferenceError, ProviderUnavailableError, RetryableInferenceError


@dataclass
class InferenceOptions:
    """
    Per-call generation options.

    Attributes:
        format: "text" or "json" (structured output request)
        temperature: Sampling temperature
        max_tokens: Maximum output tokens
        system_prompt: Optional system instruction
    """
    format: str = "text"
    temperature: float = 0.3
    max_tokens: int = 1500
    system_prompt: Optional[str] = None

    @property
    def wants_json(self) -> bool:
        return self.format == "json"


@dataclass
class InferenceResponse:
    """
    Result of one successful generation.

    Attributes:
        text: Generated text
        tokens_used: Input+output tokens, or the provider-reported total
        model_name: Model that produced the text
    """
    text: str
    tokens_used: int = 0
    model_name: str = ""


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers (Model Agnostic).

    Every provider turns (prompt, options) into an InferenceResponse or raises:
    - RetryableInferenceError for rate limits, 5xx and timeouts
    - ProviderUnavailableError when the backend cannot be reached
    - InferenceError for anything else (bad request, auth)
    """

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.timeout = config.get("timeout", 120)

    @abstractmethod
    def generate(self, prompt: str, options: InferenceOptions) -> InferenceResponse:
        """
        Run one generation request.

        Args:
            prompt: Fully rendered user prompt
            options: Generation options

        Returns:
            InferenceResponse with text and token usage
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the provider service is available.
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """
        Return provider identifier for logging.
        """
        pass

    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Whether provider runs locally (no cloud costs)."""
        pass

    def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body."""
        name = self.get_name()
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise RetryableInferenceError(f"{name} request timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise ProviderUnavailableError(f"Could not connect to {name}: {e}") from e

        raise_for_status(response, name)

        try:
            return response.json()
        except ValueError as e:
            raise InferenceError(f"{name} returned a non-JSON response") from e


def raise_for_status(response: requests.Response, provider: str) -> None:
    """Map an HTTP error status to a retryable or terminal inference error."""
    status = response.status_code
    if status < 400:
        return
    detail = (response.text or "")[:200]
    if status == 429:
        raise RetryableInferenceError(f"{provider} rate limit exceeded", status_code=status)
    if status >= 500:
        raise RetryableInferenceError(f"{provider} server error {status}: {detail}", status_code=status)
    raise InferenceError(f"{provider} rejected the request ({status}): {detail}", status_code=status)
