"""
plugins/shroud_warning/bridge.py

Request/reply queries against the game bridge.

Queries never raise on a missing or broken bridge: timeouts, missing
responders and malformed replies are logged and reported as None so the
caller can fall back.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from nats import errors as nats_errors

try:
    from .subjects import Subjects
except ImportError:
    from subjects import Subjects


PLAYER = "player"


@dataclass
class StatusReading:
    """
    Authoritative reading of a status effect on the player.

    Attributes:
        present: Whether the effect is currently on the player.
        duration: Full duration in seconds (0 if unknown).
        expiration: Absolute time the effect ends (0 if unknown).
    """

    present: bool
    duration: float = 0.0
    expiration: float = 0.0


@dataclass
class GameContext:
    """
    Player context used by scope filters and applicability checks.

    Attributes:
        group: "party", "raid" or None when not grouped.
        unit_class: Class token such as "ROGUE" (empty if unknown).
    """

    group: Optional[str] = None
    unit_class: str = ""


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class GameBridge:
    """
    Queries the game bridge over NATS.

    Args:
        nats_client: Connected NATS client.
        timeout: Returns the request timeout in seconds.
    """

    def __init__(self, nats_client: Any, timeout: Callable[[], float]):
        self.nats = nats_client
        self.timeout = timeout
        self.logger = logging.getLogger(f"{__name__}.GameBridge")

    async def ping(self) -> bool:
        """
        Check that the bridge is answering.

        Returns:
            True if any reply arrived before the timeout.
        """
        try:
            await self.nats.request(Subjects.HOST_PING, b"{}", timeout=self.timeout())
            return True
        except (asyncio.TimeoutError, nats_errors.Error) as e:
            self.logger.error(f"Game bridge did not answer ping: {e}")
            return False

    async def query_status(self, effect_id: int) -> Optional[StatusReading]:
        """
        Read a status effect on the player.

        Args:
            effect_id: Identifier of the status effect.

        Returns:
            StatusReading, or None if the bridge gave no usable reply.
        """
        result = await self._request(
            Subjects.STATUS_QUERY, {"actor": PLAYER, "effect_id": effect_id}
        )
        if result is None:
            return None

        return StatusReading(
            present=bool(result.get("present", False)),
            duration=_number(result.get("duration")),
            expiration=_number(result.get("expiration")),
        )

    async def query_context(self) -> Optional[GameContext]:
        """
        Read the player's group and class.

        Returns:
            GameContext, or None if the bridge gave no usable reply.
        """
        result = await self._request(Subjects.CONTEXT_QUERY, {"actor": PLAYER})
        if result is None:
            return None

        group = result.get("group")
        return GameContext(
            group=str(group).lower() if group else None,
            unit_class=str(result.get("class") or "").upper(),
        )

    async def _request(self, subject: str, payload: dict) -> Optional[Dict[str, Any]]:
        try:
            response = await self.nats.request(
                subject,
                json.dumps(payload).encode(),
                timeout=self.timeout()
            )
        except (asyncio.TimeoutError, nats_errors.Error) as e:
            self.logger.warning(f"No reply on {subject}: {e}")
            return None

        try:
            result = json.loads(response.data.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.warning(f"Invalid reply on {subject}: {e}")
            return None

        if not isinstance(result, dict):
            self.logger.warning(f"Unexpected reply on {subject}: {result!r}")
            return None

        return result
