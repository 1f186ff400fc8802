"""
Message connectors and delivery channels.

Built-ins are registered by short name ("jsonl", "file"); anything else is
loaded from a "package.module:ClassName" path given in the config. Classes are
constructed with a single options dict.
"""

import importlib
from typing import Any, Dict, Optional, Type

from ..utils.errors import ConfigurationError
from .base import DeliveryChannel, DeliveryResult, FetchResult, MessageConnector, RawMessage
from .file_channel import FileChannel
from .jsonl import JsonlConnector
from .sync import fetch_messages

BUILTIN_CONNECTORS: Dict[str, Type[MessageConnector]] = {"jsonl": JsonlConnector}
BUILTIN_CHANNELS: Dict[str, Type[DeliveryChannel]] = {"file": FileChannel}


def _import_class(path: str) -> type:
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        raise ConfigurationError(f"Expected 'module:Class', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name}: {e}") from e
    try:
        return getattr(module, class_name)
    except AttributeError as e:
        raise ConfigurationError(f"{module_name} has no attribute {class_name}") from e


def _load(name: str, builtins: Dict[str, type], base: type, options: Optional[Dict[str, Any]]):
    cls = builtins.get(name)
    if cls is None and ":" in name:
        cls = _import_class(name)
    if cls is None:
        raise ConfigurationError(f"Unknown {base.__name__} {name!r}. Built-in: {sorted(builtins)}")
    if not (isinstance(cls, type) and issubclass(cls, base)):
        raise ConfigurationError(f"{name} is not a {base.__name__}")
    return cls(options or {})


def load_connector(name: str, options: Optional[Dict[str, Any]] = None) -> MessageConnector:
    return _load(name, BUILTIN_CONNECTORS, MessageConnector, options)


def load_channel(name: str, options: Optional[Dict[str, Any]] = None) -> DeliveryChannel:
    return _load(name, BUILTIN_CHANNELS, DeliveryChannel, options)


__all__ = [
    "DeliveryChannel",
    "DeliveryResult",
    "FetchResult",
    "MessageConnector",
    "RawMessage",
    "FileChannel",
    "JsonlConnector",
    "fetch_messages",
    "load_channel",
    "load_connector",
]
