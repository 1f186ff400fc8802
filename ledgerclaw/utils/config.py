import copy
import json
import os
from typing import Any, Dict, Optional

from jsonschema import ValidationError, validate

from . import paths
from .errors import ConfigurationError
from .logger import logger

"""
Configuration loader for LedgerClaw.

Behavior:
- Looks for the config path passed explicitly, then env var `LEDGERCLAW_CONFIG`,
  then `<home>/config.json`.
- The file is deep-merged over `DEFAULT_CONFIG` so partial files are fine.
- The merged result is validated against `json_schema/config.schema.json`.
- Nothing is cached here; the process builds one AppContext from the result.
"""

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": 1,
    "log_level": "INFO",
    "schedule": {"daily_briefing": "0 18 * * *", "timezone": "Asia/Kolkata"},
    "fetch": {
        "initial_fetch_days": 90,
        "batch_delay_ms": 1000,
        "connector": "jsonl",
        "connector_options": {},
    },
    "delivery": {"channel": "file", "channel_options": {}},
    "filter": {"refresh_interval_days": 7},
    "models": {
        "provider": "ollama",
        "fallback": None,
        "request_timeout": 120,
        "ollama": {"base_url": "http://localhost:11434", "model": "llama3.2"},
        "openai": {"model": "gpt-4o"},
        "anthropic": {"model": "claude-sonnet-4-5"},
        "gemini": {"model": "gemini-2.0-flash"},
    },
    "inference": {"max_attempts": 3, "backoff_base": 1.0, "health_timeout": 3},
    "summarizer": {"single_call_token_limit": 6000, "chunk_size": 20},
    "storage": {"db_url": None},
}

_SCHEMA_FILE = os.path.join(paths.SCHEMA_DIR, "config.schema.json")


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `base` with `override` merged in, recursing into dicts."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _candidate_paths(path: Optional[str]):
    if path:
        yield path
    env_path = os.environ.get("LEDGERCLAW_CONFIG")
    if env_path:
        yield env_path
    yield paths.config_file()


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from JSON, falling back to defaults.

    Raises ConfigurationError when a config file exists but is not valid JSON
    or does not match the schema. A missing file is not an error.
    """
    for candidate in _candidate_paths(path):
        p_abs = os.path.abspath(os.path.expanduser(candidate))
        if not os.path.exists(p_abs):
            continue
        try:
            with open(p_abs, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {p_abs}: {e}") from e

        cfg = deep_merge(DEFAULT_CONFIG, raw)
        validate_config(cfg)
        logger.info(f"Configuration loaded from {p_abs}")
        return _finalize(cfg)

    logger.info("No config file found; using default configuration.")
    return _finalize(deep_merge(DEFAULT_CONFIG, {}))


def _finalize(cfg: Dict[str, Any]) -> Dict[str, Any]:
    if not cfg["storage"].get("db_url"):
        cfg["storage"]["db_url"] = paths.default_db_url()
    return cfg


def validate_config(cfg: Dict[str, Any]) -> None:
    """Validate configuration against the bundled JSON Schema.

    Raises ConfigurationError with the offending path on invalid configs.
    """
    if not isinstance(cfg, dict):
        raise ConfigurationError("Configuration must be a JSON object")

    with open(_SCHEMA_FILE, "r", encoding="utf-8") as f:
        schema = json.load(f)

    try:
        validate(instance=cfg, schema=schema)
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration at {location}: {e.message}") from e


if __name__ == "__main__":
    print(json.dumps(load_config(), indent=2))
