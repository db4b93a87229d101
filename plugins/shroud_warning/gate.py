"""
plugins/shroud_warning/gate.py

Decides whether a successful cast starts a countdown.

The buff is not always queryable the instant the cast completes, so an
accepted cast starts the countdown after a short settle delay, once the
bridge can report the real duration and expiration.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Set, Tuple

try:
    from .bridge import PLAYER, GameBridge
    from .config import ShroudWarningConfig
    from .engine import SHROUD_EFFECT_ID, CountdownEngine
except ImportError:
    from bridge import PLAYER, GameBridge
    from config import ShroudWarningConfig
    from engine import SHROUD_EFFECT_ID, CountdownEngine


SHROUD_BASE_DURATION = 15

SETTLE_DELAY = 0.15  # seconds


# Applicability predicates: decide at load whether the plugin listens at all
Applicability = Callable[[GameBridge], Awaitable[bool]]


async def always_applicable(bridge: GameBridge) -> bool:
    """Listen for casts regardless of class."""
    return True


def class_gate(required_class: str) -> Applicability:
    """
    Build a predicate that only listens when the player has a given class.

    Args:
        required_class: Class token, e.g. "ROGUE".
    """
    required = required_class.upper()

    async def _check(bridge: GameBridge) -> bool:
        context = await bridge.query_context()
        if context is None:
            return False
        return context.unit_class == required

    return _check


class TriggerGate:
    """
    Filters action-succeeded notifications and starts countdowns.

    A cast is accepted when it is the player's, it is the tracked action,
    no countdown is running and the scope filters allow the current group.
    Accepted casts schedule a settle task; the task re-checks that no
    countdown is running before it queries the buff and starts one.

    Args:
        engine: Countdown engine to start.
        bridge: Status and context queries.
        get_config: Returns the current settings snapshot.
        clock: Returns the current time.
        action_id: Action that applies the buff.
        effect_id: Status effect to query after the settle delay.
        base_duration: Duration assumed when the buff cannot be read.
        settle_delay: Seconds to wait before reading the buff.
    """

    def __init__(
        self,
        engine: CountdownEngine,
        bridge: GameBridge,
        get_config: Callable[[], ShroudWarningConfig],
        clock: Callable[[], float] = time.time,
        action_id: int = SHROUD_EFFECT_ID,
        effect_id: int = SHROUD_EFFECT_ID,
        base_duration: float = SHROUD_BASE_DURATION,
        settle_delay: float = SETTLE_DELAY,
    ):
        self.engine = engine
        self.bridge = bridge
        self.get_config = get_config
        self.clock = clock
        self.action_id = action_id
        self.effect_id = effect_id
        self.base_duration = base_duration
        self.settle_delay = settle_delay
        self._pending: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(f"{__name__}.TriggerGate")

    @property
    def pending_count(self) -> int:
        """Number of settle tasks not yet finished."""
        return len(self._pending)

    async def action_succeeded(self, actor: str, action_id: int) -> bool:
        """
        Handle an action-succeeded notification.

        Args:
            actor: Unit that performed the action.
            action_id: Identifier of the action.

        Returns:
            True if a settle task was scheduled.
        """
        if actor != PLAYER or action_id != self.action_id:
            return False

        if self.engine.active:
            self.logger.debug("Countdown already running, ignoring cast")
            return False

        if not await self._scope_allows():
            self.logger.debug("Scope filters reject current group, ignoring cast")
            return False

        task = asyncio.create_task(self._settle_then_start())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def read_duration(self) -> Tuple[float, float]:
        """
        Read the buff's duration and expiration from the bridge.

        Returns:
            (duration, expiration). Falls back to the base duration and
            now + base duration for anything the bridge cannot report.
        """
        duration = self.base_duration
        expiration = self.clock() + duration

        reading = await self.bridge.query_status(self.effect_id)
        if reading is None:
            self.logger.warning(
                f"Buff status unavailable, assuming {self.base_duration}s"
            )
        elif reading.present:
            if reading.duration > 0:
                duration = reading.duration
            if reading.expiration > 0:
                expiration = reading.expiration
        else:
            self.logger.debug(f"Buff not found yet, assuming {self.base_duration}s")

        return duration, expiration

    async def cancel_pending(self) -> None:
        """Cancel settle tasks that have not started a countdown yet."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._pending.clear()

    async def _scope_allows(self) -> bool:
        config = self.get_config()
        if not config.has_scope_filters:
            return True

        context = await self.bridge.query_context()
        if context is None:
            return False
        return config.scope_allows(context.group)

    async def _settle_then_start(self) -> None:
        await asyncio.sleep(self.settle_delay)
        if self.engine.active:
            return

        try:
            duration, expiration = await self.read_duration()
            # Another settle task may have started one during the query
            if self.engine.active:
                return
            await self.engine.start(expiration, duration)
        except Exception as e:
            self.logger.exception(f"Error starting countdown: {e}")
