"""
plugins/shroud_warning/announcer.py

Chat transmission for countdown messages.
"""

import json
import logging
from typing import Any, Callable, Optional

try:
    from .config import ShroudWarningConfig
    from .subjects import Subjects
except ImportError:
    from config import ShroudWarningConfig
    from subjects import Subjects


MESSAGE_TYPE = "shroud_countdown"


def format_activation(template: str, seconds: int) -> str:
    """Substitute the duration into an activation template."""
    return template.replace("%d", str(seconds))


class Announcer:
    """
    Sends countdown lines to the configured chat channel.

    Stateless: the channel is read from the settings on every call so a
    changed channel applies to the next line. Transmission errors are
    not caught here.

    Args:
        nats_client: Connected NATS client.
        get_config: Returns the current settings snapshot.
    """

    def __init__(self, nats_client: Any, get_config: Callable[[], ShroudWarningConfig]):
        self.nats = nats_client
        self.get_config = get_config
        self.logger = logging.getLogger(f"{__name__}.Announcer")

    async def say(self, text: Optional[str]) -> None:
        """Send text verbatim. Empty or missing text is ignored."""
        if not text:
            return

        channel = self.get_config().chat_channel.value
        await self.nats.publish(
            Subjects.chat_send(channel),
            json.dumps({
                "channel": channel,
                "message": text,
                "type": MESSAGE_TYPE,
            }).encode()
        )
        self.logger.debug(f"[{channel}] {text}")
