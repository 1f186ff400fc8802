"""
Secrets management for LedgerClaw.

API keys are looked up, in order, in:
- the system keyring (service "ledgerclaw", user "<provider>_api_key"),
  which covers Windows Credential Manager, macOS Keychain and
  Linux Secret Service;
- environment variables such as OPENAI_API_KEY, optionally populated from
  the `.env` file in the LedgerClaw home directory.
"""

import logging
import os
from typing import Optional

import keyring
from dotenv import load_dotenv
from keyring.errors import KeyringError, PasswordDeleteError

from . import paths

logger = logging.getLogger(__name__)

SERVICE_NAME = "ledgerclaw"

ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def load_env_file(path: Optional[str] = None) -> bool:
    """Load the home `.env` file into the environment without overriding it."""
    env_path = path or paths.env_file()
    if not os.path.exists(env_path):
        return False
    return load_dotenv(env_path, override=False)


def get_api_key(provider: str) -> Optional[str]:
    """
    Retrieve the API key for a provider.

    Args:
        provider: Provider name (e.g., 'openai', 'anthropic', 'gemini')

    Returns:
        API key string or None if not found anywhere
    """
    try:
        key = keyring.get_password(SERVICE_NAME, f"{provider}_api_key")
        if key:
            logger.debug(f"Retrieved API key for {provider} from keyring")
            return key
    except KeyringError as e:
        logger.debug(f"Keyring lookup failed for {provider}: {e}")

    env_var = ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
    return os.environ.get(env_var) or None


def set_api_key(provider: str, api_key: str) -> bool:
    """
    Store API key for a provider in the system keyring.

    Returns:
        True if successful, False otherwise
    """
    try:
        keyring.set_password(SERVICE_NAME, f"{provider}_api_key", api_key)
        logger.info(f"Stored API key for {provider} in keyring")
        return True
    except KeyringError as e:
        logger.error(f"Failed to store API key for {provider}: {e}")
        return False


def delete_api_key(provider: str) -> bool:
    """Remove the API key for a provider from the keyring."""
    try:
        keyring.delete_password(SERVICE_NAME, f"{provider}_api_key")
        logger.info(f"Deleted API key for {provider} from keyring")
        return True
    except PasswordDeleteError:
        logger.warning(f"No API key found for {provider} to delete")
        return False
    except KeyringError as e:
        logger.error(f"Failed to delete API key for {provider}: {e}")
        return False
