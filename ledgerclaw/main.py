"""
LedgerClaw command line entry point.

Commands:
    daemon      Catch up, then run the daily briefing on schedule (default)
    run         Run the pipeline once now (manual trigger)
    bootstrap   Build the organic filter from the stored message history
    status      Show recent runs and pending action items
    set-key     Store a cloud provider API key in the system keyring
"""

import argparse
import sys
from typing import List, Optional

from .__version__ import __version__
from .core.context import AppContext
from .core.organic_filter import OrganicFilterBuilder
from .core.pipeline import PipelineOrchestrator
from .core.scheduler import start_scheduler
from .utils import paths
from .utils.config import load_config
from .utils.errors import LedgerClawError
from .utils.logger import logger, setup_logger
from .utils.secrets import ENV_VARS, load_env_file, set_api_key


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ledgerclaw", description="Daily financial email briefings.")
    parser.add_argument("--config", help="Path to config.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("daemon", help="Run on schedule (default)")
    sub.add_parser("run", help="Run the pipeline once now")
    sub.add_parser("bootstrap", help="Build the organic filter")
    status = sub.add_parser("status", help="Show recent runs and pending actions")
    status.add_argument("--limit", type=int, default=5)
    set_key = sub.add_parser("set-key", help="Store an API key in the keyring")
    set_key.add_argument("provider", choices=sorted(ENV_VARS))
    set_key.add_argument("key")
    return parser


def _cmd_run(ctx: AppContext) -> int:
    outcome = PipelineOrchestrator(ctx).run("manual")
    print(f"Run {outcome.run_id}: {outcome.status} ({outcome.tokens_used} tokens)")
    if outcome.error:
        print(f"  {outcome.error}")
    return 0 if outcome.status in ("success", "skipped") else 1


def _cmd_bootstrap(ctx: AppContext) -> int:
    builder = OrganicFilterBuilder(ctx.store, ctx.rules, ctx.gateway, ctx.prompts, ctx.config, ctx.clock)
    tokens = builder.build()
    print(f"Organic filter built ({tokens} tokens)")
    return 0


def _cmd_status(ctx: AppContext, limit: int) -> int:
    runs = ctx.store.recent_runs(limit)
    if not runs:
        print("No pipeline runs yet.")
    for run in runs:
        started = run["started_at"].astimezone(ctx.tz).strftime("%Y-%m-%d %H:%M")
        print(
            f"#{run['id']:<4} {started}  {run['trigger']:<9} {run['status']:<8} "
            f"fetched={run['messages_fetched']} relevant={run['messages_relevant']} "
            f"tokens={run['tokens_used']}"
        )
        if run["error"]:
            print(f"      {run['error']}")

    actions = ctx.store.pending_action_items()
    if actions:
        print("\nPending actions:")
        for item in actions:
            due = f" (due {item['due_date']})" if item["due_date"] else ""
            print(f"  [{item['priority']}] {item['description']}{due}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    command = args.command or "daemon"

    if command == "set-key":
        return 0 if set_api_key(args.provider, args.key) else 1

    try:
        paths.ensure_directories()
        load_env_file()
        config = load_config(args.config)
        setup_logger(config.get("log_level", "INFO"))
        ctx = AppContext.from_config(config)
    except LedgerClawError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        if command == "run":
            return _cmd_run(ctx)
        if command == "bootstrap":
            return _cmd_bootstrap(ctx)
        if command == "status":
            return _cmd_status(ctx, args.limit)
        start_scheduler(ctx)
        return 0
    except LedgerClawError as e:
        logger.error(f"{command} failed: {e}")
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
