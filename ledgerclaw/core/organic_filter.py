"""
Organic filter builder: grows the user rule set from the user's own mail.

Bootstrap (`build`):
1. Collect every distinct sender address in the store.
2. Split them into known-relevant / known-ignored / unknown using the
   baseline rules.
3. Ask the model about unknown senders in batches of 100.
4. Merge the relevant answers (lower-cased, deduplicated) into the relevant set.
5. Sample up to 200 subjects from relevant senders and ask the model for
   subject and body keyword phrases.
6. Save the user rules with both timestamps set.

Refresh (`refresh`) runs when the configured interval has elapsed and only
asks about senders that no rule set covers yet. New relevant senders go to
both the relevant and pending-review lists.

A failed batch is logged and skipped; it never aborts the remaining work.
"""

import json
import logging
import re
from datetime import timedelta, timezone
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..providers import InferenceOptions
from ..storage import LedgerStore
from ..utils.clock import Clock, utcnow
from ..utils.errors import InferenceError, ResponseParseError
from .gateway import InferenceGateway
from .prompt_engine import PromptEngine, numbered_list
from .rules import RuleRepository, UserRules, dedupe_casefold, merge_rules, split_known

logger = logging.getLogger(__name__)

SENDER_BATCH_SIZE = 100
SUBJECT_SAMPLE_SIZE = 200

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Extract the JSON object from a model response.

    Tolerates markdown code fences and prose before or after the object.

    Raises:
        ResponseParseError: If no JSON object can be recovered
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ResponseParseError(f"No JSON object in model output: {cleaned[:80]!r}")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Malformed JSON in model output: {e}") from e

    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, str) and v.strip()]


def _batches(items: Sequence[str], size: int) -> Iterable[Tuple[int, Sequence[str]]]:
    for start in range(0, len(items), size):
        yield start // size + 1, items[start:start + size]


class OrganicFilterBuilder:
    """
    Bootstraps and refreshes the user rule set with inference-assisted labeling.

    Args:
        store: Message store (sender history and subject samples)
        repository: Rule repository holding baseline and user rules
        gateway: Inference gateway
        prompts: Prompt engine
        config: Application config (uses `filter.refresh_interval_days`)
        clock: Time source
    """

    def __init__(
        self,
        store: LedgerStore,
        repository: RuleRepository,
        gateway: InferenceGateway,
        prompts: PromptEngine,
        config: Dict[str, Any],
        clock: Clock = utcnow,
    ):
        self.store = store
        self.repository = repository
        self.gateway = gateway
        self.prompts = prompts
        self.refresh_interval = timedelta(
            days=config.get("filter", {}).get("refresh_interval_days", 7)
        )
        self.clock = clock

    def build(self) -> int:
        """Run the full bootstrap. Returns tokens used."""
        logger.info("Building organic filter from message history...")

        senders = self.store.distinct_senders()
        if not senders:
            logger.warning("No messages in store. Skipping organic filter build.")
            return 0

        baseline = self.repository.load_baseline()
        known_relevant, known_ignored, unknown = split_known(senders, baseline)
        logger.info(
            f"{len(senders)} senders: {len(known_relevant)} match baseline rules, "
            f"{len(known_ignored)} ignored, {len(unknown)} need model classification"
        )

        discovered, tokens = self._classify_senders(unknown)
        relevant = dedupe_casefold([s.lower() for s in known_relevant] + discovered)
        logger.info(f"Total relevant senders identified: {len(relevant)}")

        subject_keywords, body_keywords, keyword_tokens = self._extract_keywords(relevant)
        tokens += keyword_tokens

        # A rebuild keeps the lists users curate by hand.
        previous = self.repository.load_user()
        now = self.clock()
        self.repository.save_user(
            UserRules(
                version=1,
                generated_at=now,
                last_refreshed_at=now,
                relevant_senders=relevant,
                ignore_senders=previous.ignore_senders if previous else (),
                pending_review=previous.pending_review if previous else (),
                subject_keywords=dedupe_casefold(subject_keywords),
                body_keywords=dedupe_casefold(body_keywords),
            )
        )
        logger.info(
            f"Organic filter built: {len(relevant)} relevant senders, "
            f"{len(subject_keywords)} subject keywords, {len(body_keywords)} body keywords"
        )
        return tokens

    def refresh(self) -> int:
        """Classify senders seen since the last refresh, if one is due. Returns tokens used."""
        user = self.repository.load_user()
        if user is None:
            logger.info("No user rules exist. Running full organic filter build.")
            return self.build()

        now = self.clock()
        last = user.last_refreshed_at
        if last is not None:
            if last.tzinfo is None:
                last = last.replace(tzinfo=timezone.utc)
            if now - last < self.refresh_interval:
                logger.info("Filter refresh not yet due. Skipping.")
                return 0

        logger.info("Running periodic filter refresh...")
        merged = merge_rules(self.repository.load_baseline(), user)
        _, _, truly_new = split_known(self.store.distinct_senders(), merged)

        if not truly_new:
            logger.info("No new senders to classify. Filter up to date.")
            self.repository.save_user(user.with_discoveries([], now))
            return 0

        logger.info(f"Found {len(truly_new)} new senders to classify")
        discovered, tokens = self._classify_senders(truly_new)
        if discovered:
            logger.info(f"Discovered {len(discovered)} new relevant senders (pending review)")

        self.repository.save_user(user.with_discoveries(discovered, now))
        return tokens

    def _classify_senders(self, senders: Sequence[str]) -> Tuple[List[str], int]:
        """Ask the model which senders are relevant, in batches."""
        relevant: List[str] = []
        tokens = 0
        total_batches = (len(senders) + SENDER_BATCH_SIZE - 1) // SENDER_BATCH_SIZE

        for number, batch in _batches(list(senders), SENDER_BATCH_SIZE):
            logger.info(f"Classifying senders: batch {number}/{total_batches} ({len(batch)} senders)")
            asked = {s.lower() for s in batch}
            try:
                response = self.gateway.call(
                    self.prompts.render("classify_senders", sender_list=numbered_list(batch)),
                    InferenceOptions(
                        format="json",
                        temperature=0.1,
                        max_tokens=2000,
                        system_prompt=self.prompts.get_system_prompt(),
                    ),
                )
                tokens += response.tokens_used
                parsed = parse_json_response(response.text)
            except (InferenceError, ResponseParseError) as e:
                logger.warning(f"Sender classification failed for batch {number}: {e}")
                continue

            for sender in _string_list(parsed, "financial"):
                sender = sender.lower()
                if sender in asked:
                    relevant.append(sender)
                else:
                    logger.warning(f"Model returned a sender that was not asked about: {sender}")

        return list(dedupe_casefold(relevant)), tokens

    def _extract_keywords(self, relevant_senders: Sequence[str]) -> Tuple[List[str], List[str], int]:
        subjects = self.store.subjects_by_senders(relevant_senders, limit=SUBJECT_SAMPLE_SIZE)
        if not subjects:
            return [], [], 0

        logger.info(f"Extracting keywords from {len(subjects)} subjects")
        try:
            response = self.gateway.call(
                self.prompts.render("extract_keywords", subject_lines=numbered_list(subjects)),
                InferenceOptions(
                    format="json",
                    temperature=0.2,
                    max_tokens=1500,
                    system_prompt=self.prompts.get_system_prompt(),
                ),
            )
        except InferenceError as e:
            logger.warning(f"Keyword extraction failed: {e}")
            return [], [], 0

        try:
            parsed = parse_json_response(response.text)
        except ResponseParseError as e:
            logger.warning(f"Keyword extraction returned unusable output: {e}")
            return [], [], response.tokens_used

        return (
            [k.lower() for k in _string_list(parsed, "subject_keywords")],
            [k.lower() for k in _string_list(parsed, "body_keywords")],
            response.tokens_used,
        )
