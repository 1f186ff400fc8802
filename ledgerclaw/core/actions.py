"""
Action item extraction from generated briefing text.

This is best-effort parsing over model prose. It looks for the "Actions
Required" section, reads list-style lines after it, infers priority from
the 🔴 / 🟡 / 🟢 markers and pulls an optional due date from cue words.
Malformed lines are skipped; a briefing without the section yields no items.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

ANCHOR_RE = re.compile(r"actions?\s+required", re.IGNORECASE)

PRIORITY_MARKERS = (("🔴", "urgent"), ("🟡", "soon"), ("🟢", "fyi"))
DEFAULT_PRIORITY = "fyi"
BULLETS = ("-", "•", "* ")
MIN_DESCRIPTION_LENGTH = 6
HEADING_MAX_WORDS = 2

_DUE_RE = re.compile(
    r"\b(?:due(?:\s+(?:on|by|date))?|by|before|deadline)\b[:\s]*"
    r"("
    r"\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}(?:st|nd|rd|th)?[\s/-][A-Za-z0-9]+(?:[\s/-],?\s*\d{2,4})?"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s*\d{4})?"
    r")",
    re.IGNORECASE,
)
_ISO_DATE_RE = re.compile(r"\d{4}-\d{1,2}-\d{1,2}$")


@dataclass
class ExtractedAction:
    description: str
    priority: str = DEFAULT_PRIORITY
    due_date: Optional[str] = None
    message_id: Optional[str] = None


def _marker_priority(line: str) -> Optional[str]:
    for marker, priority in PRIORITY_MARKERS:
        if marker in line:
            return priority
    return None


def _clean_description(line: str) -> str:
    text = line.lstrip("-•").strip()
    for marker, _ in PRIORITY_MARKERS:
        text = text.replace(marker, "")
    return text.strip(" *_")


def _is_heading(line: str) -> bool:
    """A marker line without a bullet that is a label such as `**🔴 Urgent**` or `🟡 Due soon:`."""
    if line.endswith(":"):
        return True
    label = _clean_description(line).rstrip(":").strip(" *_")
    return len(label.split()) <= HEADING_MAX_WORDS


def parse_due_date(text: str, reference: Optional[datetime] = None) -> Optional[str]:
    """Return the first cue-introduced date in `text` as YYYY-MM-DD, or None."""
    default = (reference or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    for match in _DUE_RE.finditer(text):
        candidate = match.group(1).strip().rstrip(",.")
        # dayfirst would read 2026-04-01 as 4 January
        dayfirst = not _ISO_DATE_RE.match(candidate)
        try:
            parsed = date_parser.parse(candidate, dayfirst=dayfirst, default=default)
        except (ValueError, OverflowError):
            continue
        return parsed.date().isoformat()
    return None


def extract_action_items(text: str, reference: Optional[datetime] = None) -> List[ExtractedAction]:
    """
    Extract action items from briefing text.

    Args:
        text: Generated briefing
        reference: Date used to complete partial dates such as "Mar 20"

    Returns:
        Items in document order; empty when there is no actions section
    """
    if not text:
        return []

    anchor = ANCHOR_RE.search(text)
    if anchor is None:
        return []

    items: List[ExtractedAction] = []
    priority = DEFAULT_PRIORITY

    for raw_line in text[anchor.end():].splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        marker = _marker_priority(line)
        if marker:
            priority = marker

        is_bullet = line.startswith(BULLETS)
        if not (is_bullet or marker):
            continue
        if marker and not is_bullet and _is_heading(line):
            continue

        description = _clean_description(line)
        if len(description) < MIN_DESCRIPTION_LENGTH or "no action" in description.lower():
            continue

        items.append(
            ExtractedAction(
                description=description,
                priority=priority,
                due_date=parse_due_date(description, reference),
            )
        )

    logger.debug(f"Extracted {len(items)} action items")
    return items
