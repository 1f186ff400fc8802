"""
Briefing generation.

Small inputs go to the model in a single call. Inputs whose estimated size
exceeds `summarizer.single_call_token_limit` are split into chunks of
`summarizer.chunk_size` messages, summarized one chunk per call, and merged
by a final consolidation call. The size estimate is characters / 4.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from ..providers import InferenceOptions, InferenceResponse
from ..storage import LedgerStore
from ..utils.clock import Clock, utcnow
from .actions import extract_action_items
from .gateway import InferenceGateway
from .prompt_engine import PromptEngine, format_messages_for_prompt

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
PARTIAL_SEPARATOR = "\n\n---\n\n"


@dataclass
class DigestResult:
    digest_id: int
    content: str
    tokens_used: int
    model_name: Optional[str]
    action_count: int


def estimate_tokens(text: str) -> float:
    return len(text) / CHARS_PER_TOKEN


def describe_period(start: datetime, end: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """'15 Mar 2026 (Sunday)' for one local day, otherwise a range with a day count."""
    local_start = start.astimezone(tz) if tz else start
    local_end = end.astimezone(tz) if tz else end
    start_text = local_start.strftime("%d %b %Y")
    end_text = local_end.strftime("%d %b %Y")
    if start_text == end_text:
        return f"{end_text} ({local_end.strftime('%A')})"
    days = math.ceil((end - start) / timedelta(days=1))
    return f"{start_text} to {end_text} ({days} days)"


class Summarizer:
    """
    Turns relevant messages into a persisted digest with action items.

    Args:
        store: Ledger store, receives the digest and its action items
        gateway: Inference gateway
        prompts: Prompt engine
        config: Application config (uses `summarizer` and `schedule.timezone`)
        clock: Time source
    """

    def __init__(
        self,
        store: LedgerStore,
        gateway: InferenceGateway,
        prompts: PromptEngine,
        config: Dict[str, Any],
        clock: Clock = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.prompts = prompts
        self.clock = clock

        summarizer_cfg = config.get("summarizer", {})
        self.single_call_token_limit = summarizer_cfg.get("single_call_token_limit", 6000)
        self.chunk_size = max(1, int(summarizer_cfg.get("chunk_size", 20)))
        self.tz = ZoneInfo(config.get("schedule", {}).get("timezone", "UTC"))

    def summarize(self, messages: Sequence, period_start: datetime, period_end: datetime) -> DigestResult:
        """
        Generate, extract and persist one digest.

        Args:
            messages: Relevant messages (with `category` set)
            period_start: Window start
            period_end: Window end

        Raises:
            ValueError: If there are no messages or the period is empty
            InferenceError: If a model call fails after retries
        """
        if not messages:
            raise ValueError("Cannot summarize an empty message set")

        local_end = period_end.astimezone(self.tz)
        context = {
            "date": local_end.strftime("%d %b %Y"),
            "day": local_end.strftime("%A"),
            "period_description": describe_period(period_start, period_end, self.tz),
        }

        formatted = format_messages_for_prompt(messages)
        estimate = estimate_tokens(formatted)

        if estimate <= self.single_call_token_limit:
            logger.info(f"Generating briefing (single call, ~{round(estimate)} estimated input tokens)")
            responses = [self._generate("briefing", 0.4, 1500, financial_emails=formatted, **context)]
        else:
            responses = self._generate_chunked(messages, context)

        content = responses[-1].text
        tokens = sum(r.tokens_used for r in responses)
        model_name = responses[-1].model_name or None

        now = self.clock()
        actions = extract_action_items(content, reference=local_end)
        digest_id = self.store.add_digest(
            generated_at=now,
            period_start=period_start,
            period_end=period_end,
            message_count=len(messages),
            content=content,
            model_used=model_name,
            tokens_used=tokens,
        )
        self.store.add_action_items(digest_id, actions, created_at=now)

        logger.info(
            f"Briefing generated: {len(content)} chars, {len(actions)} actions, {tokens} tokens"
        )
        return DigestResult(
            digest_id=digest_id,
            content=content,
            tokens_used=tokens,
            model_name=model_name,
            action_count=len(actions),
        )

    def _generate_chunked(self, messages: Sequence, context: Dict[str, str]) -> List[InferenceResponse]:
        chunks = [messages[i:i + self.chunk_size] for i in range(0, len(messages), self.chunk_size)]
        logger.info(f"Many messages ({len(messages)}), generating {len(chunks)} partial summaries")

        responses = []
        for number, chunk in enumerate(chunks, start=1):
            logger.info(f"Generating partial summary {number}/{len(chunks)}...")
            responses.append(
                self._generate(
                    "briefing", 0.4, 800, financial_emails=format_messages_for_prompt(chunk), **context
                )
            )

        logger.info("Consolidating partial summaries into final briefing...")
        partials = PARTIAL_SEPARATOR.join(r.text for r in responses)
        responses.append(self._generate("consolidate", 0.3, 1500, partial_summaries=partials, **context))
        return responses

    def _generate(self, template: str, temperature: float, max_tokens: int, **context) -> InferenceResponse:
        return self.gateway.call(
            self.prompts.render(template, **context),
            InferenceOptions(
                format="text",
                temperature=temperature,
                max_tokens=max_tokens,
                system_prompt=self.prompts.get_system_prompt(),
            ),
        )
