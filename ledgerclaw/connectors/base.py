"""
Collaborator interfaces consumed by the pipeline.

The message source and the delivery channel live outside the core: a
connector only has to turn "everything since this checkpoint" into a list of
RawMessage records, and a channel only has to accept text.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class RawMessage:
    """
    One message as produced by a connector.

    Attributes:
        id: Stable, globally unique message identifier
        sender: Sender address
        subject: Subject line
        received_at: Timezone-aware receive timestamp
        sender_name: Optional display name
        body_text: Optional decoded plain-text body
        thread_id: Optional conversation identifier
        labels: Source-specific labels
    """
    id: str
    sender: str
    subject: str
    received_at: datetime
    sender_name: Optional[str] = None
    body_text: Optional[str] = None
    thread_id: Optional[str] = None
    labels: List[str] = field(default_factory=list)


@dataclass
class FetchResult:
    messages: List[RawMessage]
    checkpoint: Optional[str] = None


@dataclass
class DeliveryResult:
    success: bool
    reason: Optional[str] = None


class MessageConnector(ABC):
    """Message source producing raw records since a checkpoint."""

    @abstractmethod
    def get_name(self) -> str:
        """Source name, used as the checkpoint key."""

    @abstractmethod
    def fetch_since(self, checkpoint: Optional[str], since: datetime) -> FetchResult:
        """
        Fetch messages newer than `checkpoint`.

        Args:
            checkpoint: Opaque token from the previous fetch, or None for an
                initial full-window fetch
            since: Lower bound for the full-window mode

        Raises:
            CheckpointExpiredError: When the checkpoint is no longer valid
        """


class DeliveryChannel(ABC):
    """Sink for a finished briefing."""

    @abstractmethod
    def get_name(self) -> str:
        pass

    @abstractmethod
    def deliver(self, text: str) -> DeliveryResult:
        pass
