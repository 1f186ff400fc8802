"""
Anthropic provider for Claude LLM inference.

Uses the Messages API. Claude has no native JSON switch, so JSON requests
get an extra instruction appended to the system prompt.
"""

from typing import Dict, Optional

import requests

from .base import InferenceOptions, InferenceResponse, LLMProvider
from ..utils.errors import ConfigurationError, InferenceError
from ..utils.logger import logger
from ..utils.secrets import get_api_key

ANTHROPIC_VERSION = "2023-06-01"
JSON_INSTRUCTION = "Respond with valid JSON only, no other text."


class AnthropicProvider(LLMProvider):
    """
    Anthropic provider for Claude LLM inference.

    Features:
    - Claude Sonnet / Haiku support
    - Token usage tracking (input_tokens + output_tokens)
    - Automatic API key retrieval from keyring or environment
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Anthropic provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: claude-sonnet-4-5)
                - api_key: API key (or retrieved from keyring)
                - timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If no API key is available
        """
        super().__init__(config)
        config = config or {}
        self.model = config.get("model", "claude-sonnet-4-5")
        self.api_key = config.get("api_key") or get_api_key("anthropic")
        self.base_url = config.get("base_url", "https://api.anthropic.com/v1").rstrip("/")

        if not self.api_key:
            raise ConfigurationError(
                "Anthropic API key not configured. Set it with: ledgerclaw set-key anthropic sk-ant-..."
            )

    def get_name(self) -> str:
        return "anthropic"

    @property
    def is_local(self) -> bool:
        return False

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def health_check(self) -> bool:
        """
        Check if Anthropic API is accessible.
        Anthropic has no health endpoint, so this sends a one-token message.
        """
        try:
            response = requests.post(
                f"{self.base_url}/messages",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "hi"}],
                },
                timeout=10,
            )

            if response.status_code == 401:
                logger.error("Anthropic API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Anthropic rate limit hit during health check")
                return True

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Anthropic health check failed: {e}")
            return False

    def generate(self, prompt: str, options: InferenceOptions) -> InferenceResponse:
        system = options.system_prompt or ""
        if options.wants_json:
            system = f"{system}\n\n{JSON_INSTRUCTION}".strip()

        payload = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        data = self._post(f"{self.base_url}/messages", payload, headers=self._headers())

        blocks = [b.get("text", "") for b in data.get("content", []) if b.get("type", "text") == "text"]
        if not blocks:
            raise InferenceError("Empty response from Anthropic")

        usage = data.get("usage", {})
        return InferenceResponse(
            text="".join(blocks).strip(),
            tokens_used=int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0)),
            model_name=data.get("model", self.model),
        )
