"""
Pipeline orchestrator: one run of fetch -> refresh -> classify -> summarize -> deliver.

Run states: running -> success | skipped | partial | failed (all terminal).

- The window starts where the last success/skipped run ended (or
  `fetch.initial_fetch_days` ago on the first run) and ends now, so a run
  after missed days covers all of them.
- A scheduled run on a day that already has a completed run is recorded as
  skipped without doing any work. Manual and catch-up runs always proceed.
- Filter refresh is best-effort. Any other failure, including store errors
  after delivery, ends the run as failed; the error is recorded and then
  re-raised.
- A delivery failure ends the run as partial. The digest stays persisted and
  undelivered.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from ..connectors import fetch_messages
from ..utils.errors import DeliveryError
from .classifier import Classifier
from .context import AppContext
from .organic_filter import OrganicFilterBuilder
from .summarizer import DigestResult, Summarizer

logger = logging.getLogger(__name__)

TRIGGERS = ("scheduled", "manual", "catchup")


@dataclass
class RunOutcome:
    run_id: int
    status: str
    digest_id: Optional[int] = None
    tokens_used: int = 0
    error: Optional[str] = None


class PipelineOrchestrator:
    """
    Executes pipeline runs against one AppContext. Runs are sequential.

    Args:
        ctx: Process context
        classifier: Override the classifier (tests)
        filter_builder: Override the organic filter builder (tests)
        summarizer: Override the summarizer (tests)
    """

    def __init__(
        self,
        ctx: AppContext,
        classifier: Optional[Classifier] = None,
        filter_builder: Optional[OrganicFilterBuilder] = None,
        summarizer: Optional[Summarizer] = None,
    ):
        self.ctx = ctx
        self.store = ctx.store
        self.classifier = classifier or Classifier(ctx.store, ctx.clock)
        self.filter_builder = filter_builder or OrganicFilterBuilder(
            ctx.store, ctx.rules, ctx.gateway, ctx.prompts, ctx.config, ctx.clock
        )
        self.summarizer = summarizer or Summarizer(
            ctx.store, ctx.gateway, ctx.prompts, ctx.config, ctx.clock
        )
        fetch_cfg = ctx.config.get("fetch", {})
        self.initial_lookback = timedelta(days=fetch_cfg.get("initial_fetch_days", 90))
        self.batch_delay = fetch_cfg.get("batch_delay_ms", 1000) / 1000.0

    def compute_window(self, now: datetime) -> Tuple[datetime, datetime]:
        last = self.store.last_completed_run()
        if last and last["period_end"] is not None:
            return last["period_end"], now
        return now - self.initial_lookback, now

    def is_duplicate(self, trigger: str, now: datetime) -> bool:
        """True for a scheduled trigger on a local day that already has a completed run."""
        if trigger != "scheduled":
            return False
        last = self.store.last_completed_run()
        if not last or last["finished_at"] is None:
            return False
        return last["finished_at"].astimezone(self.ctx.tz).date() == now.astimezone(self.ctx.tz).date()

    def run(self, trigger: str = "manual") -> RunOutcome:
        """
        Execute one run.

        Raises:
            ValueError: Unknown trigger
            Exception: Whatever failed a fatal stage, after the run is recorded
        """
        if trigger not in TRIGGERS:
            raise ValueError(f"Unknown trigger {trigger!r}; expected one of {TRIGGERS}")

        now = self.ctx.clock()
        run_id = self.store.create_run(trigger, started_at=now)
        logger.info(f"━━━ Pipeline run {run_id} started ({trigger}) ━━━")

        tokens = 0
        try:
            if self.is_duplicate(trigger, now):
                last_end = self.store.last_completed_run()["period_end"]
                logger.info("Already completed a run today. Skipping scheduled run.")
                return self._finish(run_id, "skipped", period_start=last_end, period_end=last_end)

            period_start, period_end = self.compute_window(now)
            self.store.update_run(run_id, period_start=period_start, period_end=period_end)
            logger.info(f"Window: {period_start.isoformat()} -> {period_end.isoformat()}")

            # Probe the provider afresh for every run.
            self.ctx.gateway.reset()

            logger.info("Stage 1/6: fetching messages")
            fetched = fetch_messages(
                self.store, self.ctx.connector, period_start, now, batch_delay=self.batch_delay
            )
            self.store.update_run(run_id, messages_fetched=fetched)

            logger.info("Stage 2/6: refreshing organic filter")
            tokens += self._refresh_filter()

            logger.info("Stage 3/6: classifying messages")
            rules = self.ctx.rules.load_merged()
            classified = self.classifier.classify_pending(self.store.unclassified_message_ids(), rules)
            self.store.update_run(run_id, messages_classified=classified.total, tokens_used=tokens)

            logger.info("Stage 4/6: collecting relevant messages")
            relevant = self.store.relevant_messages_in_window(period_start, period_end)
            self.store.update_run(run_id, messages_relevant=len(relevant))
            if not relevant:
                logger.info("No relevant messages in window.")
                return self._finish(run_id, "skipped", tokens_used=tokens)

            logger.info(f"Stage 5/6: generating briefing from {len(relevant)} messages")
            digest = self.summarizer.summarize(relevant, period_start, period_end)
            tokens += digest.tokens_used
            self.store.update_run(run_id, digest_id=digest.digest_id, tokens_used=tokens)

            logger.info("Stage 6/6: delivering briefing")
            delivery_error = self._deliver(digest)
            if delivery_error:
                return self._finish(
                    run_id, "partial", tokens_used=tokens, digest_id=digest.digest_id, error=delivery_error
                )
            self.store.mark_digest_delivered(digest.digest_id, self.ctx.channel.get_name(), self.ctx.clock())
            return self._finish(run_id, "success", tokens_used=tokens, digest_id=digest.digest_id)
        except Exception as e:
            logger.error(f"Pipeline run {run_id} failed: {e}")
            self._finish(run_id, "failed", tokens_used=tokens, error=str(e) or type(e).__name__)
            raise

    def _refresh_filter(self) -> int:
        try:
            return self.filter_builder.refresh()
        except Exception as e:
            logger.warning(f"Filter refresh failed, continuing with existing rules: {e}")
            return 0

    def _deliver(self, digest: DigestResult) -> Optional[str]:
        """Hand the digest to the channel; returns the error text on failure."""
        channel = self.ctx.channel
        try:
            result = channel.deliver(digest.content)
            if not result.success:
                raise DeliveryError(result.reason or "delivery channel reported failure")
        except Exception as e:
            logger.warning(f"Delivery via {channel.get_name()} failed; digest {digest.digest_id} kept: {e}")
            return f"delivery failed: {e}"
        return None

    def _finish(self, run_id: int, status: str, **fields) -> RunOutcome:
        fields.setdefault("finished_at", self.ctx.clock())
        record = self.store.update_run(run_id, status=status, **fields)
        logger.info(f"━━━ Pipeline run {run_id} finished: {status} ━━━")
        return RunOutcome(
            run_id=run_id,
            status=status,
            digest_id=record["digest_id"],
            tokens_used=record["tokens_used"],
            error=record["error"],
        )
