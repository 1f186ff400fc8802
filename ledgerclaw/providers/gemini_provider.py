"""
Google Gemini provider for cloud LLM inference.

Uses the `generateContent` REST endpoint with `responseMimeType` for JSON
requests.
"""

from typing import Dict, Optional

import requests

from .base import InferenceOptions, InferenceResponse, LLMProvider
from ..utils.errors import ConfigurationError, InferenceError
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class GeminiProvider(LLMProvider):
    """
    Gemini provider for cloud LLM inference.

    Features:
    - Gemini Flash / Pro support
    - Token usage from promptTokenCount + candidatesTokenCount
    - Automatic API key retrieval from keyring or environment
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Gemini provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gemini-2.0-flash)
                - api_key: API key (or retrieved from keyring)
                - timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If no API key is available
        """
        super().__init__(config)
        config = config or {}
        self.model = config.get("model", "gemini-2.0-flash")
        self.api_key = config.get("api_key") or get_api_key("gemini")
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

        if not self.api_key:
            raise ConfigurationError(
                "Gemini API key not configured. Set it with: ledgerclaw set-key gemini AIza..."
            )

    def get_name(self) -> str:
        return "gemini"

    @property
    def is_local(self) -> bool:
        return False

    def health_check(self) -> bool:
        """
        Check if Gemini API is accessible.
        Uses the models list endpoint for a lightweight check.
        """
        try:
            response = requests.get(f"{self.base_url}/models?key={self.api_key}", timeout=10)

            if response.status_code in (400, 403):
                logger.error("Gemini API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Gemini rate limit hit during health check")
                return True

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Gemini health check failed: {e}")
            return False

    def generate(self, prompt: str, options: InferenceOptions) -> InferenceResponse:
        generation_config = {
            "maxOutputTokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.wants_json:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if options.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}

        data = self._post(
            f"{self.base_url}/models/{self.model}:generateContent?key={self.api_key}",
            payload,
            headers={"Content-Type": "application/json"},
        )

        candidates = data.get("candidates", [])
        if not candidates:
            raise InferenceError("No candidates in Gemini response")
        parts = candidates[0].get("content", {}).get("parts", [])
        if not parts:
            raise InferenceError("No parts in Gemini response")

        usage = data.get("usageMetadata", {})
        return InferenceResponse(
            text="".join(p.get("text", "") for p in parts).strip(),
            tokens_used=int(usage.get("promptTokenCount", 0)) + int(usage.get("candidatesTokenCount", 0)),
            model_name=data.get("modelVersion", self.model),
        )
