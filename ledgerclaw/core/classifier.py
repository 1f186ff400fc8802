"""
Rule-based message classifier.

Tiers, evaluated in fixed order (first match wins):
1. ignore-sender match      -> not relevant, 1.00, rule:ignore
2. relevant-sender match    -> relevant,     1.00, rule:sender
3. subject keyword match    -> relevant,     0.85, rule:subject
4. >= 2 distinct body hits  -> relevant,     0.70, rule:body
5. nothing matched          -> not relevant, 0.80, rule:none

Ignore rules come first so that marketing mail from a bank domain never
reaches the keyword tiers. No inference calls happen here.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..storage import Classification, LedgerStore
from ..utils.clock import Clock, utcnow
from .rules import MergedRules, contains_keyword, count_keyword_hits, matches_any_sender

logger = logging.getLogger(__name__)

BODY_SCAN_CHARS = 1500
MIN_BODY_KEYWORD_HITS = 2

TAG_IGNORE = "rule:ignore"
TAG_SENDER = "rule:sender"
TAG_SUBJECT = "rule:subject"
TAG_BODY = "rule:body"
TAG_NONE = "rule:none"


@dataclass(frozen=True)
class Decision:
    is_relevant: bool
    category: Optional[str]
    confidence: float
    decided_by: str


def decide(message, rules: MergedRules) -> Decision:
    """Run the tiered procedure for one message (needs sender, subject, body_text)."""
    sender = message.sender or ""
    subject = message.subject or ""

    if matches_any_sender(sender, rules.ignore_senders):
        return Decision(False, None, 1.0, TAG_IGNORE)

    if matches_any_sender(sender, rules.relevant_senders):
        return Decision(True, rules.category_for(sender, subject), 1.0, TAG_SENDER)

    if contains_keyword(subject, rules.subject_keywords):
        return Decision(True, rules.category_for(sender, subject), 0.85, TAG_SUBJECT)

    body = (message.body_text or "")[:BODY_SCAN_CHARS]
    if body and count_keyword_hits(body, rules.body_keywords) >= MIN_BODY_KEYWORD_HITS:
        return Decision(True, rules.category_for(sender, subject), 0.70, TAG_BODY)

    return Decision(False, None, 0.80, TAG_NONE)


@dataclass
class ClassifyResult:
    total: int = 0
    relevant_count: int = 0
    relevant_ids: List[str] = field(default_factory=list)

    @property
    def not_relevant_count(self) -> int:
        return self.total - self.relevant_count


class Classifier:
    """
    Applies `decide` to stored messages and persists the outcome.

    Already-classified messages are returned from storage unchanged, so a
    replayed run never rewrites an earlier decision.
    """

    def __init__(self, store: LedgerStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def classify(self, message_id: str, rules: MergedRules) -> Optional[Classification]:
        existing = self.store.get_classification(message_id)
        if existing is not None:
            return existing

        message = self.store.get_message(message_id)
        if message is None:
            logger.warning(f"Cannot classify unknown message {message_id}")
            return None

        decision = decide(message, rules)
        record = Classification(
            message_id=message_id,
            is_relevant=decision.is_relevant,
            category=decision.category,
            confidence=decision.confidence,
            decided_by=decision.decided_by,
            decided_at=self.clock(),
        )
        self.store.save_classification(record)
        return record

    def classify_pending(self, message_ids: Sequence[str], rules: MergedRules) -> ClassifyResult:
        result = ClassifyResult()
        for message_id in message_ids:
            record = self.classify(message_id, rules)
            if record is None:
                continue
            result.total += 1
            if record.is_relevant:
                result.relevant_count += 1
                result.relevant_ids.append(message_id)

        logger.info(
            f"Classified {result.total} messages: {result.relevant_count} relevant, "
            f"{result.not_relevant_count} not relevant"
        )
        return result
