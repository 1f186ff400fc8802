"""
Unit tests for the provider registry.
"""

from unittest.mock import patch

import pytest

from ledgerclaw.providers.base import InferenceResponse, LLMProvider
from ledgerclaw.providers.factory import ProviderFactory
from ledgerclaw.providers.ollama_provider import OllamaProvider
from ledgerclaw.utils.errors import ConfigurationError


class EchoProvider(LLMProvider):
    def generate(self, prompt, options):
        return InferenceResponse(prompt, 0, "echo")

    def health_check(self):
        return True

    def get_name(self):
        return "echo"

    @property
    def is_local(self):
        return True


class TestProviderFactory:
    """Tests for ProviderFactory."""

    def teardown_method(self):
        ProviderFactory.unregister("echo")

    def test_builtin_providers_registered(self):
        providers = ProviderFactory.list_providers()

        for name in ("ollama", "openai", "anthropic", "gemini"):
            assert name in providers

    def test_create_ollama_provider(self):
        provider = ProviderFactory.create("ollama", {"model": "mistral"})

        assert isinstance(provider, OllamaProvider)
        assert provider.model == "mistral"

    def test_create_returns_fresh_instances(self):
        assert ProviderFactory.create("ollama") is not ProviderFactory.create("ollama")

    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError) as excinfo:
            ProviderFactory.create("unknown_provider")

        assert "unknown_provider" in str(excinfo.value)

    @patch.dict("os.environ", {}, clear=True)
    @patch("ledgerclaw.utils.secrets.keyring")
    def test_cloud_provider_without_key(self, mock_keyring):
        mock_keyring.get_password.return_value = None

        with pytest.raises(ConfigurationError):
            ProviderFactory.create("anthropic", {})

    def test_register_and_unregister(self):
        ProviderFactory.register("echo", EchoProvider)

        assert ProviderFactory.is_registered("echo")
        assert ProviderFactory.create("echo").generate("hi", None).text == "hi"
        assert ProviderFactory.unregister("echo") is True
        assert ProviderFactory.is_registered("echo") is False
        assert ProviderFactory.unregister("echo") is False
