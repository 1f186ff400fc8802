"""
Filesystem layout of a LedgerClaw installation.

Everything lives under one home directory (``~/.ledgerclaw`` unless
``LEDGERCLAW_HOME`` points elsewhere).
"""

import os

PACKAGE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DEFAULT_RULES_FILE = os.path.join(PACKAGE_DIR, "rules", "default.json")
SCHEMA_DIR = os.path.join(PACKAGE_DIR, "json_schema")


def ledgerclaw_home() -> str:
    return os.path.abspath(
        os.path.expanduser(os.environ.get("LEDGERCLAW_HOME", "~/.ledgerclaw"))
    )


def config_file() -> str:
    return os.path.join(ledgerclaw_home(), "config.json")


def env_file() -> str:
    return os.path.join(ledgerclaw_home(), ".env")


def rules_dir() -> str:
    return os.path.join(ledgerclaw_home(), "rules")


def baseline_rules_file() -> str:
    """User-overridden baseline if present, otherwise the shipped one."""
    override = os.path.join(rules_dir(), "default.json")
    if os.path.exists(override):
        return override
    return DEFAULT_RULES_FILE


def user_rules_file() -> str:
    return os.path.join(rules_dir(), "user.json")


def prompts_dir() -> str:
    return os.path.join(ledgerclaw_home(), "prompts")


def outbox_dir() -> str:
    return os.path.join(ledgerclaw_home(), "outbox")


def default_db_url() -> str:
    return "sqlite:///" + os.path.join(ledgerclaw_home(), "ledger.db")


def ensure_directories() -> None:
    for path in (ledgerclaw_home(), rules_dir(), prompts_dir(), outbox_dir()):
        os.makedirs(path, exist_ok=True)
