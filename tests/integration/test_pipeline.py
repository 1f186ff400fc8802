"""
Integration tests for the pipeline orchestrator.

Runs the real store, classifier, summarizer and action extraction against a
temporary SQLite database, with a stub connector, gateway and channel.
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from ledgerclaw.core.pipeline import PipelineOrchestrator
from ledgerclaw.core.summarizer import Summarizer
from ledgerclaw.utils.errors import InferenceError, RetryableInferenceError

RELEVANT_SENDERS = [f"alerts{i}@bank.example" for i in range(6)]


def _orchestrator(ctx, refresh_tokens=0, **kwargs):
    kwargs.setdefault("filter_builder", Mock(refresh=Mock(return_value=refresh_tokens)))
    return PipelineOrchestrator(ctx, **kwargs)


@pytest.fixture
def inbox(make_message):
    relevant = [
        make_message(f"r{i}", sender=sender, subject=f"Transaction alert {i}")
        for i, sender in enumerate(RELEVANT_SENDERS)
    ]
    other = [
        make_message(f"o{i}", sender=f"friend{i}@mail.example", subject="Dinner plans")
        for i in range(4)
    ]
    return relevant + other


class TestEndToEnd:
    """A full run over a mixed inbox."""

    def test_only_relevant_messages_reach_the_digest(self, app_context, connector, gateway, channel, store, inbox):
        connector.messages = inbox

        outcome = _orchestrator(app_context).run("manual")

        assert outcome.status == "success"
        digest = store.get_digest(outcome.digest_id)
        assert digest["message_count"] == 6
        assert digest["delivery_status"] == "delivered"
        assert digest["delivered_via"] == "stub-channel"

        assert len(gateway.calls) == 1
        prompt = gateway.calls[0][0]
        assert prompt.count("- From: ") == 6
        assert "Dinner plans" not in prompt

        assert channel.delivered == [digest["content"]]
        assert len(store.action_items_for_digest(outcome.digest_id)) == 1

    def test_provider_is_probed_once_per_run(self, app_context, connector, gateway, inbox):
        connector.messages = inbox
        orchestrator = _orchestrator(app_context)

        orchestrator.run("manual")
        orchestrator.run("manual")

        assert gateway.resets == 2

    def test_run_record(self, app_context, connector, store, clock, inbox):
        connector.messages = inbox

        outcome = _orchestrator(app_context, refresh_tokens=25).run("manual")
        run = store.get_run(outcome.run_id)

        assert run["status"] == "success"
        assert run["trigger"] == "manual"
        assert run["messages_fetched"] == 10
        assert run["messages_classified"] == 10
        assert run["messages_relevant"] == 6
        assert run["tokens_used"] == 35
        assert run["finished_at"] == clock()
        assert outcome.tokens_used == 35

    def test_summarizer_receives_exactly_the_relevant_set(self, app_context, connector, inbox):
        connector.messages = inbox
        summarizer = Mock(wraps=Summarizer(
            app_context.store, app_context.gateway, app_context.prompts, app_context.config, app_context.clock
        ))

        _orchestrator(app_context, summarizer=summarizer).run("manual")

        messages = summarizer.summarize.call_args[0][0]
        assert sorted(m.id for m in messages) == [f"r{i}" for i in range(6)]

    def test_batch_delay_from_config(self, app_context):
        app_context.config["fetch"]["batch_delay_ms"] = 250

        assert _orchestrator(app_context).batch_delay == 0.25

    def test_unknown_trigger(self, app_context):
        with pytest.raises(ValueError):
            _orchestrator(app_context).run("cron")


class TestWindow:
    """Tests for window computation across runs."""

    def test_first_run_uses_initial_lookback(self, app_context, connector, store, clock, inbox):
        connector.messages = inbox

        outcome = _orchestrator(app_context).run("manual")
        run = store.get_run(outcome.run_id)

        assert run["period_start"] == clock() - timedelta(days=7)
        assert run["period_end"] == clock()
        assert connector.calls[0] == (None, clock() - timedelta(days=7))

    def test_next_window_starts_at_previous_end(self, app_context, connector, store, clock, make_message, inbox):
        connector.messages = inbox
        orchestrator = _orchestrator(app_context)
        first_end = clock()
        orchestrator.run("manual")

        clock.advance(days=3)
        connector.messages = [
            make_message("late", sender="alerts@bank.example", received_at=clock() - timedelta(hours=1))
        ]
        outcome = orchestrator.run("catchup")
        run = store.get_run(outcome.run_id)

        assert run["period_start"] == first_end
        assert run["period_end"] == clock()
        assert store.get_digest(outcome.digest_id)["message_count"] == 1

    def test_skipped_run_advances_window(self, app_context, connector, store, clock, make_message):
        connector.messages = [make_message("x", sender="friend@mail.example", subject="Hi")]
        orchestrator = _orchestrator(app_context)

        first = orchestrator.run("manual")
        clock.advance(days=1)
        second = orchestrator.run("manual")

        assert first.status == "skipped"
        assert store.get_run(second.run_id)["period_start"] == store.get_run(first.run_id)["period_end"]


class TestDuplicateSuppression:
    """Scheduled runs on a day that already has a completed run."""

    def test_scheduled_duplicate_is_skipped_without_work(self, app_context, connector, gateway, store, clock, inbox):
        connector.messages = inbox
        orchestrator = _orchestrator(app_context)
        orchestrator.run("manual")
        calls_before = (len(connector.calls), len(gateway.calls))

        clock.advance(hours=2)
        outcome = orchestrator.run("scheduled")
        run = store.get_run(outcome.run_id)

        assert outcome.status == "skipped"
        assert (len(connector.calls), len(gateway.calls)) == calls_before
        assert run["period_start"] == run["period_end"]
        assert orchestrator.filter_builder.refresh.call_count == 1

    def test_manual_run_same_day_proceeds(self, app_context, connector, clock, inbox):
        connector.messages = inbox
        orchestrator = _orchestrator(app_context)
        orchestrator.run("manual")

        clock.advance(hours=1)
        orchestrator.run("manual")

        assert len(connector.calls) == 2

    def test_scheduled_run_next_day_proceeds(self, app_context, connector, clock, inbox):
        connector.messages = inbox
        orchestrator = _orchestrator(app_context)
        orchestrator.run("manual")

        clock.advance(days=1)
        outcome = orchestrator.run("scheduled")

        assert len(connector.calls) == 2
        assert outcome.status == "skipped"  # nothing new arrived

    def test_first_scheduled_run_is_not_a_duplicate(self, app_context, connector, inbox):
        connector.messages = inbox

        assert _orchestrator(app_context).run("scheduled").status == "success"


class TestFailures:
    """Failure handling per stage."""

    def test_delivery_failure_is_partial(self, app_context, connector, channel, store, inbox):
        connector.messages = inbox
        channel.success = False
        channel.reason = "smtp down"

        outcome = _orchestrator(app_context).run("manual")

        assert outcome.status == "partial"
        assert outcome.error == "delivery failed: smtp down"
        assert outcome.digest_id is not None
        assert store.get_digest(outcome.digest_id)["delivery_status"] == "undelivered"

        run = store.get_run(outcome.run_id)
        assert run["tokens_used"] == 10
        assert run["messages_classified"] == 10
        assert run["messages_relevant"] == 6
        assert run["digest_id"] == outcome.digest_id
        assert run["finished_at"] is not None

    def test_partial_run_does_not_advance_window(self, app_context, connector, channel, store, clock, inbox):
        connector.messages = inbox
        channel.success = False
        orchestrator = _orchestrator(app_context)
        orchestrator.run("manual")

        channel.success = True
        clock.advance(hours=1)
        outcome = orchestrator.run("manual")

        assert store.get_run(outcome.run_id)["period_start"] == clock() - timedelta(days=7)

    def test_channel_exception_is_partial(self, app_context, connector, inbox):
        connector.messages = inbox
        app_context.channel = Mock()
        app_context.channel.get_name.return_value = "broken"
        app_context.channel.deliver.side_effect = OSError("disk full")

        outcome = _orchestrator(app_context).run("manual")

        assert outcome.status == "partial"
        assert "disk full" in outcome.error

    def test_store_failure_after_delivery_is_recorded(self, app_context, connector, channel, store, inbox):
        connector.messages = inbox
        store.mark_digest_delivered = Mock(side_effect=RuntimeError("database is locked"))

        with pytest.raises(RuntimeError):
            _orchestrator(app_context).run("manual")

        run = store.recent_runs(1)[0]
        assert run["status"] == "failed"
        assert run["error"] == "database is locked"
        assert run["finished_at"] is not None
        assert len(channel.delivered) == 1

    def test_window_failure_is_recorded(self, app_context, store):
        orchestrator = _orchestrator(app_context)
        orchestrator.compute_window = Mock(side_effect=RuntimeError("bad run history"))

        with pytest.raises(RuntimeError):
            orchestrator.run("manual")

        run = store.recent_runs(1)[0]
        assert run["status"] == "failed"
        assert run["error"] == "bad run history"

    def test_fetch_failure_is_recorded_and_raised(self, app_context, connector, store):
        connector.error = RuntimeError("imap down")

        with pytest.raises(RuntimeError):
            _orchestrator(app_context).run("manual")

        run = store.recent_runs(1)[0]
        assert run["status"] == "failed"
        assert run["error"] == "imap down"
        assert run["finished_at"] is not None

    def test_summarizer_failure_is_recorded_and_raised(self, app_context, connector, gateway, store, channel, inbox):
        connector.messages = inbox
        gateway.responses = [RetryableInferenceError("rate limited", 429)]

        with pytest.raises(RetryableInferenceError):
            _orchestrator(app_context).run("manual")

        run = store.recent_runs(1)[0]
        assert run["status"] == "failed"
        assert run["messages_relevant"] == 6
        assert channel.delivered == []

    def test_failed_run_does_not_advance_window(self, app_context, connector, store, clock, inbox):
        connector.error = RuntimeError("imap down")
        orchestrator = _orchestrator(app_context)
        with pytest.raises(RuntimeError):
            orchestrator.run("manual")

        connector.error = None
        connector.messages = inbox
        clock.advance(hours=1)
        outcome = orchestrator.run("manual")

        assert store.get_run(outcome.run_id)["period_start"] == clock() - timedelta(days=7)

    def test_refresh_failure_is_not_fatal(self, app_context, connector, inbox):
        connector.messages = inbox
        builder = Mock(refresh=Mock(side_effect=InferenceError("model down")))

        outcome = _orchestrator(app_context, filter_builder=builder).run("manual")

        assert outcome.status == "success"

    def test_no_relevant_messages_is_skipped(self, app_context, connector, gateway, channel, make_message):
        connector.messages = [make_message("o1", sender="friend@mail.example", subject="Dinner plans")]

        outcome = _orchestrator(app_context).run("manual")

        assert outcome.status == "skipped"
        assert outcome.digest_id is None
        assert gateway.calls == []
        assert channel.delivered == []
