from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from ..utils.clock import utcnow
from .models import (
    ActionItemModel,
    Base,
    ClassificationModel,
    DigestModel,
    MessageModel,
    PipelineRunModel,
    SyncCheckpointModel,
)

logger = logging.getLogger(__name__)

COMPLETED_RUN_STATUSES = ("success", "skipped")
TERMINAL_RUN_STATUSES = ("success", "skipped", "partial", "failed")

_RUN_FIELDS = {
    "finished_at",
    "status",
    "period_start",
    "period_end",
    "messages_fetched",
    "messages_classified",
    "messages_relevant",
    "tokens_used",
    "digest_id",
    "error",
}


@dataclass
class Message:
    id: str
    sender: str
    subject: str
    received_at: datetime
    fetched_at: datetime
    sender_name: Optional[str] = None
    body_text: Optional[str] = None
    thread_id: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    category: Optional[str] = None


@dataclass
class Classification:
    message_id: str
    is_relevant: bool
    category: Optional[str]
    confidence: float
    decided_by: str
    decided_at: datetime


class LedgerStore:
    """SQLAlchemy-backed persistence for messages, classifications, digests and runs."""

    def __init__(self, db_url: str, *, auto_create_schema: bool = True):
        self.db_url = db_url
        self._ensure_sqlite_dir(db_url)
        self.engine = create_engine(db_url, future=True)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        if auto_create_schema:
            Base.metadata.create_all(self.engine)

    @staticmethod
    def _ensure_sqlite_dir(db_url: str) -> None:
        url = make_url(db_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            directory = os.path.dirname(os.path.abspath(url.database))
            os.makedirs(directory, exist_ok=True)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # ─── Messages ────────────────────────────────────────────────────

    def upsert_messages(self, messages: Iterable[Any], fetched_at: Optional[datetime] = None) -> int:
        """
        Insert messages not seen before; existing rows are left untouched.

        Returns:
            Number of newly stored messages
        """
        fetched_at = fetched_at or utcnow()
        inserted = 0
        with self.session() as session:
            seen = set()
            for raw in messages:
                if raw.id in seen or session.get(MessageModel, raw.id) is not None:
                    continue
                seen.add(raw.id)
                received_at = raw.received_at
                if received_at.tzinfo is None:
                    received_at = received_at.replace(tzinfo=timezone.utc)
                if received_at > fetched_at:
                    logger.debug(f"Message {raw.id} received after fetch time; clamping")
                    received_at = fetched_at
                session.add(
                    MessageModel(
                        id=raw.id,
                        thread_id=raw.thread_id,
                        sender=raw.sender.strip(),
                        sender_name=raw.sender_name,
                        subject=raw.subject or "",
                        body_text=raw.body_text,
                        received_at=received_at,
                        fetched_at=fetched_at,
                        labels=json.dumps(list(raw.labels or [])),
                    )
                )
                inserted += 1
        return inserted

    def get_message(self, message_id: str) -> Optional[Message]:
        with self.session() as session:
            row = session.get(MessageModel, message_id)
            return self._to_message(row) if row else None

    def get_messages(self, message_ids: Sequence[str]) -> List[Message]:
        if not message_ids:
            return []
        with self.session() as session:
            rows = session.execute(
                select(MessageModel)
                .where(MessageModel.id.in_(list(message_ids)))
                .order_by(MessageModel.received_at.desc())
            ).scalars()
            return [self._to_message(r) for r in rows]

    def messages_in_window(self, start: datetime, end: datetime) -> List[Message]:
        with self.session() as session:
            rows = session.execute(
                select(MessageModel)
                .where(MessageModel.received_at >= start, MessageModel.received_at < end)
                .order_by(MessageModel.received_at.desc())
            ).scalars()
            return [self._to_message(r) for r in rows]

    def count_messages(self) -> int:
        with self.session() as session:
            return int(session.execute(select(func.count()).select_from(MessageModel)).scalar_one())

    def distinct_senders(self) -> List[str]:
        """All sender addresses seen so far, lower-cased and deduplicated."""
        with self.session() as session:
            rows = session.execute(
                select(func.lower(MessageModel.sender)).distinct().order_by(func.lower(MessageModel.sender))
            ).scalars()
            return [r for r in rows if r]

    def subjects_by_senders(self, senders: Sequence[str], limit: Optional[int] = None) -> List[str]:
        if not senders:
            return []
        lowered = sorted({s.lower() for s in senders})
        with self.session() as session:
            stmt = (
                select(MessageModel.subject)
                .where(func.lower(MessageModel.sender).in_(lowered))
                .distinct()
                .order_by(MessageModel.subject)
            )
            if limit:
                stmt = stmt.limit(limit)
            return [s for s in session.execute(stmt).scalars() if s]

    # ─── Classifications ─────────────────────────────────────────────

    def get_classification(self, message_id: str) -> Optional[Classification]:
        with self.session() as session:
            row = session.get(ClassificationModel, message_id)
            return self._to_classification(row) if row else None

    def save_classification(self, record: Classification) -> None:
        """Write a classification, replacing any previous one for the message."""
        with self.session() as session:
            session.merge(
                ClassificationModel(
                    message_id=record.message_id,
                    is_relevant=bool(record.is_relevant),
                    category=record.category,
                    confidence=float(record.confidence),
                    decided_by=record.decided_by,
                    decided_at=record.decided_at,
                )
            )

    def unclassified_message_ids(self) -> List[str]:
        with self.session() as session:
            rows = session.execute(
                select(MessageModel.id)
                .outerjoin(ClassificationModel, ClassificationModel.message_id == MessageModel.id)
                .where(ClassificationModel.message_id.is_(None))
                .order_by(MessageModel.received_at)
            ).scalars()
            return list(rows)

    def relevant_messages_in_window(self, start: datetime, end: datetime) -> List[Message]:
        """Relevant messages received in [start, end), with their category attached."""
        with self.session() as session:
            rows = session.execute(
                select(MessageModel, ClassificationModel.category)
                .join(ClassificationModel, ClassificationModel.message_id == MessageModel.id)
                .where(
                    ClassificationModel.is_relevant.is_(True),
                    MessageModel.received_at >= start,
                    MessageModel.received_at < end,
                )
                .order_by(MessageModel.received_at.desc())
            ).all()
            messages = []
            for row, category in rows:
                message = self._to_message(row)
                message.category = category
                messages.append(message)
            return messages

    # ─── Digests & action items ──────────────────────────────────────

    def add_digest(
        self,
        *,
        generated_at: datetime,
        period_start: datetime,
        period_end: datetime,
        message_count: int,
        content: str,
        model_used: Optional[str],
        tokens_used: int,
    ) -> int:
        if period_start >= period_end:
            raise ValueError("Digest period start must be before period end")
        with self.session() as session:
            row = DigestModel(
                generated_at=generated_at,
                period_start=period_start,
                period_end=period_end,
                message_count=message_count,
                content=content,
                model_used=model_used,
                tokens_used=tokens_used,
                delivery_status="undelivered",
            )
            session.add(row)
            session.flush()
            return int(row.id)

    def get_digest(self, digest_id: int) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.get(DigestModel, digest_id)
            return self._digest_to_dict(row) if row else None

    def mark_digest_delivered(self, digest_id: int, channel: str, at: Optional[datetime] = None) -> bool:
        return self._advance_delivery(digest_id, "delivered", channel=channel, at=at or utcnow())

    def mark_digest_failed(self, digest_id: int, channel: Optional[str] = None) -> bool:
        return self._advance_delivery(digest_id, "failed", channel=channel, at=None)

    def _advance_delivery(self, digest_id: int, status: str, *, channel: Optional[str], at: Optional[datetime]) -> bool:
        with self.session() as session:
            row = session.get(DigestModel, digest_id)
            if row is None:
                return False
            if row.delivery_status != "undelivered":
                logger.warning(
                    f"Digest {digest_id} already {row.delivery_status}; not moving to {status}"
                )
                return False
            row.delivery_status = status
            row.delivered_via = channel
            row.delivered_at = at
            return True

    def add_action_items(self, digest_id: int, items: Iterable[Any], created_at: Optional[datetime] = None) -> int:
        created_at = created_at or utcnow()
        count = 0
        with self.session() as session:
            for item in items:
                session.add(
                    ActionItemModel(
                        digest_id=digest_id,
                        message_id=getattr(item, "message_id", None),
                        description=item.description,
                        due_date=item.due_date,
                        priority=item.priority,
                        status="pending",
                        created_at=created_at,
                    )
                )
                count += 1
        return count

    def action_items_for_digest(self, digest_id: int) -> List[Dict[str, Any]]:
        with self.session() as session:
            rows = session.execute(
                select(ActionItemModel)
                .where(ActionItemModel.digest_id == digest_id)
                .order_by(ActionItemModel.id)
            ).scalars()
            return [self._action_to_dict(r) for r in rows]

    def pending_action_items(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self.session() as session:
            rows = session.execute(
                select(ActionItemModel)
                .where(ActionItemModel.status == "pending")
                .order_by(ActionItemModel.due_date.is_(None), ActionItemModel.due_date, ActionItemModel.id)
                .limit(limit)
            ).scalars()
            return [self._action_to_dict(r) for r in rows]

    # ─── Pipeline runs ───────────────────────────────────────────────

    def create_run(self, trigger: str, started_at: Optional[datetime] = None) -> int:
        with self.session() as session:
            row = PipelineRunModel(
                started_at=started_at or utcnow(),
                status="running",
                trigger=trigger,
            )
            session.add(row)
            session.flush()
            return int(row.id)

    def update_run(self, run_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
        unknown = set(fields) - _RUN_FIELDS
        if unknown:
            raise ValueError(f"Unknown pipeline run fields: {sorted(unknown)}")
        with self.session() as session:
            row = session.get(PipelineRunModel, run_id)
            if row is None:
                return None
            if row.status in TERMINAL_RUN_STATUSES and fields.get("status", row.status) != row.status:
                raise ValueError(f"Pipeline run {run_id} is already {row.status}")
            for key, value in fields.items():
                setattr(row, key, value)
            session.flush()
            return self._run_to_dict(row)

    def get_run(self, run_id: int) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.get(PipelineRunModel, run_id)
            return self._run_to_dict(row) if row else None

    def last_completed_run(self) -> Optional[Dict[str, Any]]:
        """Most recently finished run that ended in success or skipped."""
        with self.session() as session:
            row = session.execute(
                select(PipelineRunModel)
                .where(
                    PipelineRunModel.status.in_(COMPLETED_RUN_STATUSES),
                    PipelineRunModel.finished_at.is_not(None),
                )
                .order_by(PipelineRunModel.finished_at.desc(), PipelineRunModel.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return self._run_to_dict(row) if row else None

    def recent_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self.session() as session:
            rows = session.execute(
                select(PipelineRunModel).order_by(PipelineRunModel.id.desc()).limit(limit)
            ).scalars()
            return [self._run_to_dict(r) for r in rows]

    # ─── Sync checkpoints ────────────────────────────────────────────

    def get_checkpoint(self, source: str) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.get(SyncCheckpointModel, source)
            if row is None:
                return None
            return {
                "source": row.source,
                "last_sync_token": row.last_sync_token,
                "last_fetched_at": row.last_fetched_at,
                "last_message_at": row.last_message_at,
            }

    def save_checkpoint(
        self,
        source: str,
        token: Optional[str],
        fetched_at: datetime,
        last_message_at: Optional[datetime],
    ) -> None:
        with self.session() as session:
            session.merge(
                SyncCheckpointModel(
                    source=source,
                    last_sync_token=token,
                    last_fetched_at=fetched_at,
                    last_message_at=last_message_at,
                )
            )

    # ─── Row conversion ──────────────────────────────────────────────

    @staticmethod
    def _to_message(row: MessageModel) -> Message:
        try:
            labels = json.loads(row.labels or "[]")
        except ValueError:
            labels = []
        return Message(
            id=row.id,
            sender=row.sender,
            subject=row.subject or "",
            received_at=row.received_at,
            fetched_at=row.fetched_at,
            sender_name=row.sender_name,
            body_text=row.body_text,
            thread_id=row.thread_id,
            labels=labels,
        )

    @staticmethod
    def _to_classification(row: ClassificationModel) -> Classification:
        return Classification(
            message_id=row.message_id,
            is_relevant=bool(row.is_relevant),
            category=row.category,
            confidence=float(row.confidence),
            decided_by=row.decided_by,
            decided_at=row.decided_at,
        )

    @staticmethod
    def _digest_to_dict(row: DigestModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "generated_at": row.generated_at,
            "period_start": row.period_start,
            "period_end": row.period_end,
            "message_count": row.message_count,
            "content": row.content,
            "model_used": row.model_used,
            "tokens_used": row.tokens_used,
            "delivery_status": row.delivery_status,
            "delivered_via": row.delivered_via,
            "delivered_at": row.delivered_at,
        }

    @staticmethod
    def _action_to_dict(row: ActionItemModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "digest_id": row.digest_id,
            "message_id": row.message_id,
            "description": row.description,
            "due_date": row.due_date,
            "priority": row.priority,
            "status": row.status,
            "created_at": row.created_at,
        }

    @staticmethod
    def _run_to_dict(row: PipelineRunModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "started_at": row.started_at,
            "finished_at": row.finished_at,
            "status": row.status,
            "trigger": row.trigger,
            "period_start": row.period_start,
            "period_end": row.period_end,
            "messages_fetched": row.messages_fetched,
            "messages_classified": row.messages_classified,
            "messages_relevant": row.messages_relevant,
            "tokens_used": row.tokens_used,
            "digest_id": row.digest_id,
            "error": row.error,
        }
