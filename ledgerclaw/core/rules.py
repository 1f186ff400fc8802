"""
Rule store: the two layered rule sets and the pattern helpers built on them.

- Baseline rules ship with the package (or are overridden in the home
  directory) and are read-only at runtime.
- User rules are grown from the user's own mail by the organic filter builder.

Both are loaded as frozen value objects and combined at call time by
`merge_rules`; nothing here mutates a loaded rule set in place.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from dateutil.parser import isoparse
from jsonschema import ValidationError, validate

from ..utils import paths
from ..utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other_financial"
_SCHEMA_FILE = os.path.join(paths.SCHEMA_DIR, "rules.schema.json")


# ─── Pattern helpers ────────────────────────────────────────────────


def matches_sender(address: str, pattern: str) -> bool:
    """
    Case-insensitive sender match.

    A pattern is either an exact address or a leading-`*` suffix pattern.
    `*@bank.example` matches any non-empty local part at exactly that domain.
    """
    addr = (address or "").strip().lower()
    pat = (pattern or "").strip().lower()
    if not addr or not pat:
        return False

    if pat.startswith("*"):
        suffix = pat[1:]
        if not suffix:
            return False
        if not addr.endswith(suffix):
            return False
        if suffix.startswith("@"):
            local_part = addr[: -len(suffix)]
            return bool(local_part) and "@" not in local_part
        return True

    return addr == pat


def matches_any_sender(address: str, patterns: Iterable[str]) -> bool:
    return any(matches_sender(address, p) for p in patterns)


def contains_keyword(text: Optional[str], keywords: Iterable[str]) -> bool:
    lower = (text or "").lower()
    return any(kw and kw.lower() in lower for kw in keywords)


def count_keyword_hits(text: Optional[str], keywords: Iterable[str]) -> int:
    """Number of distinct keywords found in `text` (case-insensitive substring)."""
    lower = (text or "").lower()
    distinct = {kw.lower() for kw in keywords if kw}
    return sum(1 for kw in distinct if kw in lower)


def dedupe_casefold(items: Iterable[str]) -> Tuple[str, ...]:
    """Drop case-insensitive duplicates, keeping the first spelling seen."""
    seen = set()
    result = []
    for item in items:
        key = item.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(item.strip())
    return tuple(result)


# ─── Value objects ──────────────────────────────────────────────────


@dataclass(frozen=True)
class CategoryHints:
    name: str
    sender_hints: Tuple[str, ...] = ()
    keyword_hints: Tuple[str, ...] = ()

    def matches(self, sender: str, subject: str) -> bool:
        sender_lower = (sender or "").lower()
        subject_lower = (subject or "").lower()
        return any(h.lower() in sender_lower for h in self.sender_hints) or any(
            h.lower() in subject_lower for h in self.keyword_hints
        )


@dataclass(frozen=True)
class BaselineRules:
    version: int
    relevant_senders: Tuple[str, ...] = ()
    ignore_senders: Tuple[str, ...] = ()
    subject_keywords: Tuple[str, ...] = ()
    body_keywords: Tuple[str, ...] = ()
    categories: Tuple[CategoryHints, ...] = ()
    default_category: str = DEFAULT_CATEGORY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaselineRules":
        senders = data.get("senders", {})
        keywords = data.get("keywords", {})
        categories = tuple(
            CategoryHints(
                name=name,
                sender_hints=tuple(hints.get("sender_hints", [])),
                keyword_hints=tuple(hints.get("keyword_hints", [])),
            )
            for name, hints in data.get("categories", {}).items()
        )
        return cls(
            version=int(data.get("version", 1)),
            relevant_senders=tuple(senders.get("relevant", [])),
            ignore_senders=tuple(senders.get("ignore", [])),
            subject_keywords=tuple(keywords.get("subject", [])),
            body_keywords=tuple(keywords.get("body", [])),
            categories=categories,
            default_category=data.get("default_category", DEFAULT_CATEGORY),
        )


@dataclass(frozen=True)
class UserRules:
    version: int = 1
    generated_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None
    relevant_senders: Tuple[str, ...] = ()
    ignore_senders: Tuple[str, ...] = ()
    pending_review: Tuple[str, ...] = ()
    subject_keywords: Tuple[str, ...] = ()
    body_keywords: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRules":
        senders = data.get("senders", {})
        keywords = data.get("keywords", {})
        return cls(
            version=int(data.get("version", 1)),
            generated_at=_parse_timestamp(data.get("generated_at")),
            last_refreshed_at=_parse_timestamp(data.get("last_refreshed_at")),
            relevant_senders=dedupe_casefold(senders.get("relevant", [])),
            ignore_senders=tuple(senders.get("ignore", [])),
            pending_review=dedupe_casefold(senders.get("pending_review", [])),
            subject_keywords=tuple(keywords.get("subject", [])),
            body_keywords=tuple(keywords.get("body", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None,
            "senders": {
                "relevant": list(self.relevant_senders),
                "ignore": list(self.ignore_senders),
                "pending_review": list(self.pending_review),
            },
            "keywords": {
                "subject": list(self.subject_keywords),
                "body": list(self.body_keywords),
            },
        }

    def with_discoveries(self, senders: Sequence[str], refreshed_at: datetime) -> "UserRules":
        """Copy with `senders` added to relevant and pending-review, re-stamped."""
        return replace(
            self,
            relevant_senders=dedupe_casefold(list(self.relevant_senders) + list(senders)),
            pending_review=dedupe_casefold(list(self.pending_review) + list(senders)),
            last_refreshed_at=refreshed_at,
        )


@dataclass(frozen=True)
class MergedRules:
    """Read-only view over baseline + user rules used by the classifier."""
    relevant_senders: Tuple[str, ...] = ()
    ignore_senders: Tuple[str, ...] = ()
    subject_keywords: Tuple[str, ...] = ()
    body_keywords: Tuple[str, ...] = ()
    categories: Tuple[CategoryHints, ...] = field(default_factory=tuple)
    default_category: str = DEFAULT_CATEGORY

    def category_for(self, sender: str, subject: str) -> str:
        """First declared category whose hints match, else the default category."""
        for hints in self.categories:
            if hints.matches(sender, subject):
                return hints.name
        return self.default_category


def merge_rules(baseline: BaselineRules, user: Optional[UserRules] = None) -> MergedRules:
    if user is None:
        user = UserRules()
    return MergedRules(
        relevant_senders=baseline.relevant_senders + user.relevant_senders,
        ignore_senders=baseline.ignore_senders + user.ignore_senders,
        subject_keywords=baseline.subject_keywords + user.subject_keywords,
        body_keywords=baseline.body_keywords + user.body_keywords,
        categories=baseline.categories,
        default_category=baseline.default_category,
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return isoparse(value)
    except ValueError:
        logger.warning(f"Ignoring unparseable rule timestamp: {value!r}")
        return None


# ─── Repository ─────────────────────────────────────────────────────


class RuleRepository:
    """
    Loads and saves rule sets as JSON files.

    Args:
        baseline_path: Baseline rules file (defaults to the home override or
            the shipped `rules/default.json`)
        user_path: User rules file (defaults to `<home>/rules/user.json`)
    """

    def __init__(self, baseline_path: Optional[str] = None, user_path: Optional[str] = None):
        self.baseline_path = baseline_path or paths.baseline_rules_file()
        self.user_path = user_path or paths.user_rules_file()

    def load_baseline(self) -> BaselineRules:
        data = self._read(self.baseline_path)
        if data is None:
            raise ConfigurationError(f"Baseline rules not found: {self.baseline_path}")
        self._validate(data, "baseline", self.baseline_path)
        return BaselineRules.from_dict(data)

    def load_user(self) -> Optional[UserRules]:
        data = self._read(self.user_path)
        if data is None:
            return None
        self._validate(data, "user", self.user_path)
        return UserRules.from_dict(data)

    def save_user(self, rules: UserRules) -> None:
        """Write the user rules atomically (temp file + rename)."""
        directory = os.path.dirname(os.path.abspath(self.user_path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".user-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rules.to_dict(), f, indent=2)
            os.replace(tmp_path, self.user_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info(
            f"Saved user rules: {len(rules.relevant_senders)} relevant senders, "
            f"{len(rules.pending_review)} pending review"
        )

    def load_merged(self) -> MergedRules:
        return merge_rules(self.load_baseline(), self.load_user())

    @staticmethod
    def _read(path: str) -> Optional[Dict[str, Any]]:
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in rules file {path}: {e}") from e

    @staticmethod
    def _validate(data: Any, kind: str, path: str) -> None:
        with open(_SCHEMA_FILE, "r", encoding="utf-8") as f:
            schema = json.load(f)
        schema["$ref"] = f"#/definitions/{kind}"
        try:
            validate(instance=data, schema=schema)
        except ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path) or "<root>"
            raise ConfigurationError(f"Invalid {kind} rules in {path} at {location}: {e.message}") from e


def split_known(senders: Iterable[str], rules) -> Tuple[List[str], List[str], List[str]]:
    """
    Partition senders into (known relevant, known ignored, unknown).

    `rules` is anything with `relevant_senders` and `ignore_senders`; the
    ignore list wins when a sender matches both.
    """
    relevant, ignored, unknown = [], [], []
    for sender in senders:
        if matches_any_sender(sender, rules.ignore_senders):
            ignored.append(sender)
        elif matches_any_sender(sender, rules.relevant_senders):
            relevant.append(sender)
        else:
            unknown.append(sender)
    return relevant, ignored, unknown
