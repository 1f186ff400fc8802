"""
Shared fixtures: temp SQLite store, rule files, a fixed clock and stub
collaborators for the gateway, connector and delivery channel.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

import pytest

from ledgerclaw.connectors.base import (
    DeliveryChannel,
    DeliveryResult,
    FetchResult,
    MessageConnector,
    RawMessage,
)
from ledgerclaw.core.context import AppContext
from ledgerclaw.core.prompt_engine import PromptEngine
from ledgerclaw.core.rules import RuleRepository
from ledgerclaw.providers import InferenceResponse
from ledgerclaw.storage import LedgerStore
from ledgerclaw.utils.config import DEFAULT_CONFIG, deep_merge

FIXED_NOW = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)

BASELINE_RULES = {
    "version": 1,
    "senders": {
        "relevant": ["*@bank.example", "statements@card.example"],
        "ignore": ["offers@bank.example"],
    },
    "keywords": {
        "subject": ["statement", "payment due"],
        "body": ["available balance", "due date", "account number"],
    },
    "categories": {
        "credit_card": {"sender_hints": ["card"], "keyword_hints": ["credit card"]},
        "bank_alert": {"sender_hints": ["bank"], "keyword_hints": ["debited"]},
    },
    "default_category": "other_financial",
}


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubGateway:
    """Records prompts; answers from a queue, or with `default_text`."""

    def __init__(self, responses: Optional[list] = None, default_text: str = "Briefing", tokens: int = 10):
        self.responses = list(responses or [])
        self.default_text = default_text
        self.tokens = tokens
        self.calls = []
        self.resets = 0

    def reset(self):
        self.resets += 1

    def call(self, prompt, options=None):
        self.calls.append((prompt, options))
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item if isinstance(item, InferenceResponse) else InferenceResponse(item, self.tokens, "stub-model")
        return InferenceResponse(self.default_text, self.tokens, "stub-model")


class StubConnector(MessageConnector):
    def __init__(self, messages: Optional[List[RawMessage]] = None):
        self.messages = list(messages or [])
        self.calls = []
        self.error: Optional[Exception] = None

    def get_name(self) -> str:
        return "stub"

    def fetch_since(self, checkpoint, since):
        self.calls.append((checkpoint, since))
        if self.error:
            raise self.error
        batch, self.messages = self.messages, []
        return FetchResult(messages=batch, checkpoint=f"token-{len(self.calls)}")


class StubChannel(DeliveryChannel):
    def __init__(self, success: bool = True, reason: Optional[str] = None):
        self.success = success
        self.reason = reason
        self.delivered = []

    def get_name(self) -> str:
        return "stub-channel"

    def deliver(self, text):
        self.delivered.append(text)
        return DeliveryResult(self.success, None if self.success else self.reason)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def store(db_url):
    s = LedgerStore(db_url)
    yield s
    s.close()


@pytest.fixture
def rules_dir(tmp_path):
    directory = tmp_path / "rules"
    directory.mkdir()
    (directory / "default.json").write_text(json.dumps(BASELINE_RULES), encoding="utf-8")
    return directory


@pytest.fixture
def repository(rules_dir):
    return RuleRepository(
        baseline_path=str(rules_dir / "default.json"),
        user_path=str(rules_dir / "user.json"),
    )


@pytest.fixture
def make_message():
    """Factory for RawMessage with sensible defaults."""
    def _make(
        message_id: str,
        sender: str = "someone@example.com",
        subject: str = "Hello",
        body: Optional[str] = None,
        received_at: Optional[datetime] = None,
        sender_name: Optional[str] = None,
    ) -> RawMessage:
        return RawMessage(
            id=message_id,
            sender=sender,
            subject=subject,
            received_at=received_at or FIXED_NOW - timedelta(hours=2),
            sender_name=sender_name,
            body_text=body,
        )
    return _make


@pytest.fixture
def config(db_url):
    return deep_merge(
        DEFAULT_CONFIG,
        {
            "schedule": {"timezone": "UTC"},
            "storage": {"db_url": db_url},
            "fetch": {"initial_fetch_days": 7},
        },
    )


@pytest.fixture
def make_gateway():
    """StubGateway class, for tests that queue their own responses."""
    return StubGateway


@pytest.fixture
def gateway():
    return StubGateway(default_text="## Briefing\n\nActions Required\n- 🔴 Pay card bill due 20 Mar 2026")


@pytest.fixture
def connector():
    return StubConnector()


@pytest.fixture
def channel():
    return StubChannel()


@pytest.fixture
def app_context(config, store, repository, gateway, connector, channel, clock):
    return AppContext(
        config=config,
        store=store,
        rules=repository,
        gateway=gateway,
        prompts=PromptEngine(),
        connector=connector,
        channel=channel,
        tz=ZoneInfo("UTC"),
        clock=clock,
    )
