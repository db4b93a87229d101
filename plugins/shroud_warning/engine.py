"""
plugins/shroud_warning/engine.py

Countdown state machine.

Two states: idle and active. While active the ticker samples the time
left on the buff and announces each whole second once, counting down
from start_from to 1. The countdown ends when its own timeline runs out
(remaining minus offset reaches zero) or when the bridge reports the
buff gone.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

try:
    from .announcer import Announcer, format_activation
    from .bridge import PLAYER, GameBridge
    from .config import ShroudWarningConfig
    from .subscriptions import SubscriptionGateway
    from .ticker import Ticker
except ImportError:
    from announcer import Announcer, format_activation
    from bridge import PLAYER, GameBridge
    from config import ShroudWarningConfig
    from subscriptions import SubscriptionGateway
    from ticker import Ticker


SHROUD_EFFECT_ID = 114018

# Remaining time above this when the buff disappears counts as cancelled
EARLY_CANCEL_THRESHOLD = 2.0

# Stop reasons
REASON_EXPIRED = "expired"
REASON_REMOVED = "removed"
REASON_RESTARTED = "restarted"
REASON_DISABLED = "disabled"


@dataclass
class CountdownState:
    """
    Mutable state of the running countdown.

    Attributes:
        active: A countdown is ticking.
        buff_tracked: Status changes are meaningful (buff seen since start).
        expiration_time: Absolute time the buff ends.
        start_from: Highest number announced this run.
        last_announced_second: Last number announced, start_from + 1 before
                               the first announcement.
    """

    active: bool = False
    buff_tracked: bool = False
    expiration_time: float = 0.0
    start_from: int = 0
    last_announced_second: int = 0

    def reset(self) -> None:
        """Return every field to its empty value."""
        self.active = False
        self.buff_tracked = False
        self.expiration_time = 0.0
        self.start_from = 0
        self.last_announced_second = 0

    @property
    def is_empty(self) -> bool:
        return self == CountdownState()


def compute_start_from(countdown_start: int, total_duration: float) -> int:
    """
    Pick the first number to announce.

    The configured start is used unless it is 0 or longer than the buff,
    in which case the countdown covers the whole buff.
    """
    if countdown_start == 0 or countdown_start > total_duration:
        return int(math.floor(total_duration))
    return countdown_start


# Type aliases for callbacks
StartedCallback = Optional[Callable[[CountdownState, float], Awaitable[None]]]
EndedCallback = Optional[Callable[[str], Awaitable[None]]]


class CountdownEngine:
    """
    Runs one countdown at a time.

    The engine owns its CountdownState; nothing else mutates it. Every
    stop path resets the state fully, stops the ticker and drops the
    status-changed subscription, so change tracking is held exactly
    while a countdown is active.

    Args:
        announcer: Sends countdown lines to chat.
        gateway: Subscription manager (change tracking is toggled here).
        bridge: Status queries for cancellation checks.
        get_config: Returns the current settings snapshot.
        clock: Returns the current time, same clock as bridge expirations.
        effect_id: Status effect being tracked.
        on_started: Async callback after a countdown starts.
        on_ended: Async callback with the stop reason after a countdown ends.
    """

    def __init__(
        self,
        announcer: Announcer,
        gateway: SubscriptionGateway,
        bridge: GameBridge,
        get_config: Callable[[], ShroudWarningConfig],
        clock: Callable[[], float] = time.time,
        effect_id: int = SHROUD_EFFECT_ID,
        on_started: StartedCallback = None,
        on_ended: EndedCallback = None,
    ):
        self.announcer = announcer
        self.gateway = gateway
        self.bridge = bridge
        self.get_config = get_config
        self.clock = clock
        self.effect_id = effect_id
        self.on_started = on_started
        self.on_ended = on_ended

        self.state = CountdownState()
        self.ticker = Ticker(on_tick=self.tick)
        self.logger = logging.getLogger(f"{__name__}.CountdownEngine")

    @property
    def active(self) -> bool:
        """Whether a countdown is running."""
        return self.state.active

    @property
    def remaining(self) -> float:
        """Seconds until the buff ends (0 when idle)."""
        if not self.state.active:
            return 0.0
        return max(0.0, self.state.expiration_time - self.clock())

    async def start(
        self, expiration_time: float, total_duration: Optional[float] = None
    ) -> None:
        """
        Start a countdown, replacing any running one.

        Args:
            expiration_time: Absolute time the buff ends.
            total_duration: Full buff duration. Defaults to the time left,
                            rounded to the nearest second.
        """
        await self.stop(reason=REASON_RESTARTED)

        config = self.get_config()
        if total_duration is None:
            total_duration = math.floor(expiration_time - self.clock() + 0.5)

        start_from = compute_start_from(config.countdown_start, total_duration)

        self.state.active = True
        self.state.buff_tracked = True
        self.state.expiration_time = expiration_time
        self.state.start_from = start_from
        self.state.last_announced_second = start_from + 1

        await self.gateway.enable_change_tracking()
        self.ticker.interval = config.tick_interval
        await self.ticker.start()

        self.logger.info(
            f"Countdown started: {total_duration:g}s buff, "
            f"counting from {start_from} (offset {config.countdown_offset}s)"
        )

        if config.show_activation:
            await self.announcer.say(
                format_activation(config.activation_message, int(math.floor(total_duration)))
            )

        if self.on_started:
            await self.on_started(self.state, total_duration)

    async def tick(self) -> None:
        """
        Sample the time left and announce the current second.

        Repeated ticks within the same second announce nothing. Seconds
        skipped by a long gap between ticks are not announced late.
        """
        if not self.state.active:
            await self.ticker.stop()
            return

        config = self.get_config()
        remaining = self.state.expiration_time - self.clock()
        offset_remaining = remaining - config.countdown_offset

        if offset_remaining <= 0:
            await self.finish(reason=REASON_EXPIRED)
            return

        current_second = math.ceil(offset_remaining)
        if (
            current_second < self.state.last_announced_second
            and 1 <= current_second <= self.state.start_from
        ):
            self.state.last_announced_second = current_second
            await self.announcer.say(str(current_second))

    async def finish(self, reason: str = REASON_EXPIRED) -> None:
        """End a running countdown with the end message."""
        if not self.state.active:
            return

        config = self.get_config()
        message = config.end_message if config.show_end else None
        await self.stop(reason=reason, message=message)

    async def stop(
        self, reason: str = REASON_DISABLED, message: Optional[str] = None
    ) -> None:
        """
        Reset to idle. Safe to call when already idle.

        The state is reset, the ticker stopped and change tracking
        detached before the end message is sent, so a countdown started
        while it is in flight keeps its own ticker and subscription.

        Args:
            reason: Why the countdown stopped, passed to on_ended.
            message: Sent to chat if a countdown was running.
        """
        was_active = self.state.active
        self.state.reset()
        change_sub = self.gateway.detach_change_tracking()

        try:
            await self.ticker.stop()
            if was_active:
                self.logger.info(f"Countdown stopped ({reason})")
                await self.announcer.say(message)
                if self.on_ended:
                    await self.on_ended(reason)
        finally:
            # Last: this may run inside the status-changed callback itself
            await self.gateway.release(change_sub)

    async def status_changed(self, actor: str) -> None:
        """
        Handle a status-changed notification.

        Ends the countdown when the bridge reports the buff gone. Early
        cancellation and natural expiry are the same transition.
        """
        if actor != PLAYER or not self.state.buff_tracked:
            return

        expiration_time = self.state.expiration_time
        reading = await self.bridge.query_status(self.effect_id)
        if reading is None:
            self.logger.debug("Status unavailable, keeping countdown running")
            return
        if reading.present:
            return

        if not self.state.active:
            self.state.buff_tracked = False
            return
        if self.state.expiration_time != expiration_time:
            # A new countdown started while the query was in flight
            return

        time_left = self.state.expiration_time - self.clock()
        if time_left > EARLY_CANCEL_THRESHOLD:
            self.logger.info(f"Buff removed early ({time_left:.1f}s left)")
        else:
            self.logger.debug(f"Buff expired ({time_left:.1f}s left)")

        await self.finish(reason=REASON_REMOVED)
