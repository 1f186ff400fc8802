import logging
import time
from datetime import datetime
from typing import Callable

from ..storage import LedgerStore
from ..utils.errors import CheckpointExpiredError
from .base import FetchResult, MessageConnector

logger = logging.getLogger(__name__)


def fetch_messages(
    store: LedgerStore,
    connector: MessageConnector,
    since: datetime,
    now: datetime,
    batch_delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Pull new messages from `connector` into `store`.

    Uses the stored checkpoint for an incremental fetch and falls back to a
    full-window fetch from `since` when the connector reports it expired.

    Args:
        batch_delay: Seconds to wait between consecutive connector calls
        sleep: Sleep function (injectable for tests)

    Returns:
        Number of messages not previously stored
    """
    source = connector.get_name()
    saved = store.get_checkpoint(source)
    token = saved["last_sync_token"] if saved else None

    try:
        result: FetchResult = connector.fetch_since(token, since)
    except CheckpointExpiredError as e:
        if token is None:
            raise
        logger.warning(f"Checkpoint for {source} expired ({e}); doing a full-window fetch")
        if batch_delay > 0:
            sleep(batch_delay)
        token = None
        result = connector.fetch_since(None, since)

    inserted = store.upsert_messages(result.messages, fetched_at=now)

    newest = max((m.received_at for m in result.messages), default=None)
    if newest is None and saved:
        newest = saved["last_message_at"]
    store.save_checkpoint(source, result.checkpoint or token, now, newest)

    logger.info(f"Fetched {len(result.messages)} messages from {source}, {inserted} new")
    return inserted
