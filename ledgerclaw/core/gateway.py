"""
Inference gateway: one provider-agnostic call surface for the pipeline.

Responsibilities:
- Provider resolution: the configured primary provider, liveness-probed when
  it runs locally, with an optional fallback provider. The resolved provider
  is kept until `reset()` (once per pipeline run) or until it reports itself
  unavailable.
- Retry with exponential backoff on retryable failures (rate limit, 5xx,
  timeout). Terminal failures propagate immediately.
- Hard per-request timeout, enforced by the provider's HTTP call.

Token usage is returned on every response; summing it across a run is the
caller's job.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..providers import InferenceOptions, InferenceResponse, LLMProvider, ProviderFactory
from ..utils.errors import ProviderUnavailableError, RetryableInferenceError

logger = logging.getLogger(__name__)


class InferenceGateway:
    """
    Health-checked, retrying front for the configured LLM providers.

    Args:
        config: Full application config (uses the `models` and `inference`
            sections)
        sleep: Sleep function used between retries (injectable for tests)
    """

    def __init__(self, config: Dict[str, Any], sleep: Callable[[float], None] = time.sleep):
        models = config.get("models", {})
        inference = config.get("inference", {})

        self.models_config = models
        self.primary = models.get("provider", "ollama")
        self.fallback = models.get("fallback")
        self.request_timeout = models.get("request_timeout", 120)

        self.max_attempts = max(1, int(inference.get("max_attempts", 3)))
        self.backoff_base = float(inference.get("backoff_base", 1.0))
        self.health_timeout = inference.get("health_timeout", 3)

        self._sleep = sleep
        self._provider: Optional[LLMProvider] = None

    def _provider_config(self, name: str) -> Dict[str, Any]:
        cfg = dict(self.models_config.get(name) or {})
        cfg.setdefault("timeout", self.request_timeout)
        cfg.setdefault("health_timeout", self.health_timeout)
        return cfg

    def _create(self, name: str) -> LLMProvider:
        return ProviderFactory.create(name, self._provider_config(name))

    def resolve_provider(self) -> LLMProvider:
        """
        Return a provider that is expected to work right now.

        Cloud providers are constructed directly (a missing API key raises
        ConfigurationError). A local primary is liveness-probed first; if the
        probe fails the fallback is used, or ProviderUnavailableError raised.
        """
        provider = self._create(self.primary)
        if not provider.is_local or provider.health_check():
            return provider

        if not self.fallback:
            raise ProviderUnavailableError(
                f"{self.primary} is not reachable and no fallback provider is configured"
            )

        logger.warning(f"{self.primary} is not reachable, falling back to {self.fallback}")
        fallback = self._create(self.fallback)
        if fallback.is_local and not fallback.health_check():
            raise ProviderUnavailableError(
                f"Neither {self.primary} nor fallback {self.fallback} is reachable"
            )
        return fallback

    def get_provider(self) -> LLMProvider:
        """Return the resolved provider, resolving it on first use."""
        if self._provider is None:
            self._provider = self.resolve_provider()
            logger.info(f"Using provider: {self._provider.get_name()}")
        return self._provider

    def reset(self) -> None:
        """Forget the resolved provider so the next call probes again."""
        self._provider = None

    def call(self, prompt: str, options: Optional[InferenceOptions] = None) -> InferenceResponse:
        """
        Run one generation with retry.

        Raises:
            RetryableInferenceError: Retries exhausted (the last error, unchanged)
            InferenceError: Terminal provider failure
            ProviderUnavailableError: No working provider
            ConfigurationError: Missing credentials
        """
        options = options or InferenceOptions()
        provider = self.get_provider()

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, exp_base=2, min=0),
            retry=retry_if_exception_type(RetryableInferenceError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            response = retrying(provider.generate, prompt, options)
        except ProviderUnavailableError:
            self.reset()
            raise
        logger.debug(
            f"{provider.get_name()} returned {len(response.text)} chars, {response.tokens_used} tokens"
        )
        return response
