"""
plugins/shroud_warning/subscriptions.py

NATS subscription management.

The action subscription is always on while the plugin is loaded. The
status-changed subscription fires for every status update on the player,
most of them unrelated, so it is only held while a countdown is running.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

try:
    from .subjects import Subjects
except ImportError:
    from subjects import Subjects


MessageHandler = Callable[[Any], Awaitable[None]]


class SubscriptionGateway:
    """
    Owns the plugin's NATS subscriptions.

    All enable/disable methods are idempotent. Unsubscribe failures are
    logged and the handle is dropped either way.

    Args:
        nats_client: Connected NATS client.
        on_action: Callback for action-succeeded messages.
        on_status_changed: Callback for status-changed messages.
    """

    def __init__(
        self,
        nats_client: Any,
        on_action: MessageHandler,
        on_status_changed: MessageHandler,
    ):
        self.nats = nats_client
        self.on_action = on_action
        self.on_status_changed = on_status_changed
        self._action_sub: Optional[Any] = None
        self._change_sub: Optional[Any] = None
        self.logger = logging.getLogger(f"{__name__}.SubscriptionGateway")

    @property
    def actions_subscribed(self) -> bool:
        """Whether the action subscription is held."""
        return self._action_sub is not None

    @property
    def change_tracking(self) -> bool:
        """Whether the status-changed subscription is held."""
        return self._change_sub is not None

    async def subscribe_actions(self) -> None:
        """Subscribe to action-succeeded messages."""
        if self._action_sub is not None:
            return

        self._action_sub = await self.nats.subscribe(
            Subjects.ACTION_SUCCEEDED, cb=self.on_action
        )
        self.logger.debug(f"Subscribed to {Subjects.ACTION_SUCCEEDED}")

    async def unsubscribe_actions(self) -> None:
        """Drop the action subscription."""
        sub, self._action_sub = self._action_sub, None
        await self._unsubscribe(sub, Subjects.ACTION_SUCCEEDED)

    async def enable_change_tracking(self) -> None:
        """Subscribe to status-changed messages."""
        if self._change_sub is not None:
            return

        self._change_sub = await self.nats.subscribe(
            Subjects.STATUS_CHANGED, cb=self.on_status_changed
        )
        self.logger.debug(f"Change tracking enabled ({Subjects.STATUS_CHANGED})")

    async def disable_change_tracking(self) -> None:
        """Drop the status-changed subscription."""
        await self.release(self.detach_change_tracking())

    def detach_change_tracking(self) -> Optional[Any]:
        """
        Stop tracking changes without unsubscribing yet.

        Returns the old subscription for release(). Tracking can be
        enabled again before then; the new subscription is unaffected.
        """
        sub, self._change_sub = self._change_sub, None
        if sub is not None:
            self.logger.debug("Change tracking disabled")
        return sub

    async def release(self, sub: Optional[Any]) -> None:
        """Unsubscribe a subscription returned by detach_change_tracking()."""
        await self._unsubscribe(sub, Subjects.STATUS_CHANGED)

    async def close(self) -> None:
        """Drop all subscriptions."""
        await self.disable_change_tracking()
        await self.unsubscribe_actions()

    async def _unsubscribe(self, sub: Optional[Any], subject: str) -> None:
        if sub is None:
            return
        try:
            await sub.unsubscribe()
        except Exception as e:
            self.logger.warning(f"Error unsubscribing from {subject}: {e}")
