"""
Daemon scheduling.

On start the daemon:
1. Validates the cron expression (`schedule.daily_briefing`).
2. Runs one catch-up pipeline run if the last completed run finished on an
   earlier local day, or if there is none.
3. Hands over to an APScheduler BlockingScheduler that fires scheduled runs.
   Jobs never overlap (`max_instances=1`) and missed ticks collapse into one.
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from ..storage import LedgerStore
from ..utils.errors import ConfigurationError
from .context import AppContext
from .pipeline import PipelineOrchestrator, RunOutcome

logger = logging.getLogger(__name__)

JOB_ID = "daily_briefing"
MISFIRE_GRACE_SECONDS = 3600


def build_trigger(expression: str, tz: ZoneInfo) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression {expression!r}: {e}") from e


def needs_catch_up(store: LedgerStore, now: datetime, tz: ZoneInfo) -> bool:
    last = store.last_completed_run()
    if not last or last["finished_at"] is None:
        logger.info("No previous completed run found. Will generate first briefing.")
        return True

    last_day = last["finished_at"].astimezone(tz).date()
    today = now.astimezone(tz).date()
    if last_day == today:
        logger.info("Today's briefing already generated.")
        return False

    days = (today - last_day).days
    logger.info(f"Last completed run was {days} day(s) ago. Running catch-up...")
    return True


def check_catch_up(orchestrator: PipelineOrchestrator) -> Optional[RunOutcome]:
    """Run a catch-up run when needed. Failures are logged, never raised."""
    ctx = orchestrator.ctx
    if not needs_catch_up(ctx.store, ctx.clock(), ctx.tz):
        return None
    try:
        return orchestrator.run("catchup")
    except Exception as e:
        logger.error(f"Catch-up pipeline failed: {e}")
        return None


def scheduled_run(orchestrator: PipelineOrchestrator) -> Optional[RunOutcome]:
    logger.info("─── Scheduled pipeline triggered ───")
    try:
        return orchestrator.run("scheduled")
    except Exception as e:
        logger.error(f"Scheduled pipeline failed: {e}")
        return None


def create_scheduler(ctx: AppContext, orchestrator: PipelineOrchestrator) -> BlockingScheduler:
    expression = ctx.config["schedule"]["daily_briefing"]
    trigger = build_trigger(expression, ctx.tz)

    scheduler = BlockingScheduler(timezone=ctx.tz)
    scheduler.add_job(
        scheduled_run,
        trigger=trigger,
        args=[orchestrator],
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=MISFIRE_GRACE_SECONDS,
        replace_existing=True,
    )
    return scheduler


def start_scheduler(ctx: AppContext, orchestrator: Optional[PipelineOrchestrator] = None) -> None:
    """Validate the schedule, catch up, then block running scheduled jobs."""
    orchestrator = orchestrator or PipelineOrchestrator(ctx)
    schedule = ctx.config["schedule"]

    logger.info("LedgerClaw scheduler starting...")
    logger.info(f"Schedule: {schedule['daily_briefing']} ({schedule['timezone']})")

    # Built before catch-up so an invalid expression fails fast.
    scheduler = create_scheduler(ctx, orchestrator)

    check_catch_up(orchestrator)

    logger.info("Scheduler running. Waiting for next trigger... (Ctrl+C to stop)")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler shutting down...")
        if scheduler.running:
            scheduler.shutdown(wait=False)
