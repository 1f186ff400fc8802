"""
Process context.

One AppContext is built per process from the loaded config and handed to
every component that needs shared resources, instead of module-level
singletons.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..connectors import DeliveryChannel, MessageConnector, load_channel, load_connector
from ..storage import LedgerStore
from ..utils import paths
from ..utils.clock import Clock, utcnow
from ..utils.errors import ConfigurationError
from .gateway import InferenceGateway
from .prompt_engine import PromptEngine
from .rules import RuleRepository

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {name!r}") from e


@dataclass
class AppContext:
    config: Dict[str, Any]
    store: LedgerStore
    rules: RuleRepository
    gateway: InferenceGateway
    prompts: PromptEngine
    connector: MessageConnector
    channel: DeliveryChannel
    tz: ZoneInfo
    clock: Clock = utcnow

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        clock: Clock = utcnow,
        connector: Optional[MessageConnector] = None,
        channel: Optional[DeliveryChannel] = None,
    ) -> "AppContext":
        """
        Build every collaborator from configuration.

        Args:
            config: Loaded and validated config
            clock: Time source shared by all components
            connector: Use this connector instead of the configured one
            channel: Use this delivery channel instead of the configured one
        """
        fetch_cfg = config.get("fetch", {})
        delivery_cfg = config.get("delivery", {})

        if connector is None:
            connector = load_connector(
                fetch_cfg.get("connector", "jsonl"), fetch_cfg.get("connector_options")
            )
        if channel is None:
            channel = load_channel(
                delivery_cfg.get("channel", "file"), delivery_cfg.get("channel_options")
            )

        ctx = cls(
            config=config,
            store=LedgerStore(config["storage"]["db_url"]),
            rules=RuleRepository(),
            gateway=InferenceGateway(config),
            prompts=PromptEngine(templates_dir=paths.prompts_dir()),
            connector=connector,
            channel=channel,
            tz=resolve_timezone(config.get("schedule", {}).get("timezone", "UTC")),
            clock=clock,
        )
        logger.debug(
            f"Context ready: connector={connector.get_name()}, channel={channel.get_name()}, "
            f"provider={ctx.gateway.primary}"
        )
        return ctx

    def close(self) -> None:
        self.store.close()
