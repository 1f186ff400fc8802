"""
OpenAI provider for cloud LLM inference.

Talks to the Chat Completions endpoint; JSON requests use
`response_format={"type": "json_object"}`.
"""

from typing import Dict, Optional

import requests

from .base import InferenceOptions, InferenceResponse, LLMProvider
from ..utils.errors import ConfigurationError, InferenceError
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class OpenAIProvider(LLMProvider):
    """
    OpenAI provider for cloud LLM inference.

    Features:
    - GPT-4o family support
    - Structured JSON output on request
    - Token usage from `usage.total_tokens`
    - Automatic API key retrieval from keyring or environment
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize OpenAI provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gpt-4o)
                - api_key: API key (or retrieved from keyring)
                - base_url: API base URL (for Azure/proxies)
                - timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If no API key is available
        """
        super().__init__(config)
        config = config or {}
        self.model = config.get("model", "gpt-4o")
        self.api_key = config.get("api_key") or get_api_key("openai")
        self.base_url = config.get("base_url", "https://api.openai.com/v1").rstrip("/")

        if not self.api_key:
            raise ConfigurationError(
                "OpenAI API key not configured. Set it with: ledgerclaw set-key openai sk-..."
            )

    def get_name(self) -> str:
        return "openai"

    @property
    def is_local(self) -> bool:
        return False

    def health_check(self) -> bool:
        """
        Check if OpenAI API is accessible.
        Uses the models endpoint for a lightweight check.
        """
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=10,
            )

            if response.status_code == 401:
                logger.error("OpenAI API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("OpenAI rate limit hit during health check")
                return True  # reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    def generate(self, prompt: str, options: InferenceOptions) -> InferenceResponse:
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.wants_json:
            payload["response_format"] = {"type": "json_object"}

        data = self._post(
            f"{self.base_url}/chat/completions",
            payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError("OpenAI response did not contain a message") from e

        return InferenceResponse(
            text=content.strip(),
            tokens_used=int(data.get("usage", {}).get("total_tokens", 0)),
            model_name=data.get("model", self.model),
        )
