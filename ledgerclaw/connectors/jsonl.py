"""
JSON-lines inbox connector.

Reads an exported inbox where every line is one message object:

    {"id": "...", "sender": "...", "subject": "...", "received_at": "2026-03-15T09:30:00+05:30",
     "sender_name": "...", "body_text": "...", "thread_id": "...", "labels": ["INBOX"]}

The checkpoint is the ISO timestamp of the newest message returned so far.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse

from ..utils import paths
from ..utils.errors import CheckpointExpiredError, ConfigurationError
from .base import FetchResult, MessageConnector, RawMessage

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class JsonlConnector(MessageConnector):
    """
    Connector over a local `.jsonl` export.

    Args:
        options: Connector options with:
            - path: Export file (default: `<home>/inbox.jsonl`)
            - name: Checkpoint key (default: "jsonl")
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        options = options or {}
        self.path = os.path.expanduser(
            options.get("path") or os.path.join(paths.ledgerclaw_home(), "inbox.jsonl")
        )
        self.name = options.get("name", "jsonl")

    def get_name(self) -> str:
        return self.name

    def fetch_since(self, checkpoint: Optional[str], since: datetime) -> FetchResult:
        if checkpoint:
            try:
                lower = _aware(isoparse(checkpoint))
            except ValueError as e:
                raise CheckpointExpiredError(f"Unreadable checkpoint {checkpoint!r}") from e
            inclusive = False
        else:
            lower = _aware(since)
            inclusive = True

        messages = [
            m for m in self._read_all()
            if m.received_at > lower or (inclusive and m.received_at == lower)
        ]
        newest = max((m.received_at for m in messages), default=None)
        logger.info(f"Read {len(messages)} messages from {self.path}")
        return FetchResult(
            messages=messages,
            checkpoint=newest.isoformat() if newest else checkpoint,
        )

    def _read_all(self) -> List[RawMessage]:
        if not os.path.exists(self.path):
            raise ConfigurationError(f"Inbox export not found: {self.path}")

        messages = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(self._parse(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed line {line_no} in {self.path}: {e}")
        return messages

    @staticmethod
    def _parse(data: Dict[str, Any]) -> RawMessage:
        return RawMessage(
            id=str(data["id"]),
            sender=str(data["sender"]),
            subject=data.get("subject") or "",
            received_at=_aware(isoparse(data["received_at"])),
            sender_name=data.get("sender_name"),
            body_text=data.get("body_text"),
            thread_id=data.get("thread_id"),
            labels=list(data.get("labels") or []),
        )
