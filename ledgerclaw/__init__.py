"""
LedgerClaw: classify incoming mail, keep the relevant messages and turn them
into a scheduled briefing.
"""

from .__version__ import __version__

__all__ = ["__version__"]
