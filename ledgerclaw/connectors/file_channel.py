import logging
import os
from typing import Any, Dict, Optional

from ..utils import paths
from ..utils.clock import Clock, utcnow
from .base import DeliveryChannel, DeliveryResult

logger = logging.getLogger(__name__)


class FileChannel(DeliveryChannel):
    """Writes each briefing as a markdown file into an outbox directory."""

    def __init__(self, options: Optional[Dict[str, Any]] = None, clock: Clock = utcnow):
        options = options or {}
        self.directory = os.path.expanduser(options.get("directory") or paths.outbox_dir())
        self.clock = clock

    def get_name(self) -> str:
        return "file"

    def deliver(self, text: str) -> DeliveryResult:
        filename = f"briefing-{self.clock().strftime('%Y%m%d-%H%M%S')}.md"
        target = os.path.join(self.directory, filename)
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.error(f"Could not write briefing to {target}: {e}")
            return DeliveryResult(success=False, reason=str(e))

        logger.info(f"Briefing written to {target}")
        return DeliveryResult(success=True)
