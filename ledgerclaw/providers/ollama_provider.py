"""
Ollama provider for local LLM inference.

Uses Ollama's HTTP API (`/api/generate`) with JSON mode for structured
requests. This is the default provider: zero cloud cost, mail never leaves
the machine.
"""

from typing import Dict, Optional

import requests

from .base import InferenceOptions, InferenceResponse, LLMProvider
from ..utils.errors import InferenceError
from ..utils.logger import logger


class OllamaProvider(LLMProvider):
    """
    Ollama provider for local LLM inference.

    Features:
    - Zero cloud cost (runs locally)
    - Supports various models (llama3.2, mistral, gemma, etc.)
    - Short-timeout liveness probe used by the gateway before each call
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Ollama provider.

        Args:
            config: Provider configuration dict with:
                - base_url: Ollama API URL (default: http://localhost:11434)
                - model: Model name (default: llama3.2)
                - timeout: Request timeout in seconds (default: 120)
                - health_timeout: Liveness probe timeout in seconds (default: 3)
        """
        super().__init__(config)
        config = config or {}
        self.base_url = config.get("base_url", "http://localhost:11434").rstrip("/")
        self.model = config.get("model", "llama3.2")
        self.health_timeout = config.get("health_timeout", 3)
        self.api_endpoint = f"{self.base_url}/api/generate"

    def get_name(self) -> str:
        return "ollama"

    @property
    def is_local(self) -> bool:
        return True

    def health_check(self) -> bool:
        """
        Check if Ollama is running.
        Uses the /api/tags endpoint; a missing model only produces a warning.
        """
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
            if response.status_code != 200:
                logger.warning(f"Ollama health check returned status {response.status_code}")
                return False

            names = [m.get("name", "") for m in response.json().get("models", [])]
            if self.model not in names and f"{self.model}:latest" not in names:
                logger.warning(f"Model '{self.model}' not found in Ollama. Available: {names}")

            return True
        except requests.exceptions.Timeout:
            logger.warning("Ollama health check timed out")
            return False
        except requests.exceptions.ConnectionError:
            logger.warning("Could not connect to Ollama - is it running?")
            return False
        except ValueError as e:
            logger.warning(f"Ollama health check returned invalid JSON: {e}")
            return False

    def generate(self, prompt: str, options: InferenceOptions) -> InferenceResponse:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }
        if options.system_prompt:
            payload["system"] = options.system_prompt
        if options.wants_json:
            payload["format"] = "json"

        data = self._post(self.api_endpoint, payload)

        if "response" not in data:
            raise InferenceError("Ollama response did not contain generated text")

        tokens_used = int(data.get("prompt_eval_count", 0)) + int(data.get("eval_count", 0))
        return InferenceResponse(
            text=data["response"].strip(),
            tokens_used=tokens_used,
            model_name=data.get("model", self.model),
        )
