"""
plugins/shroud_warning/plugin.py

Shroud of Concealment countdown plugin using NATS-based architecture.

Announces a countdown in chat when the player casts Shroud of
Concealment, ending with a warning just before the buff drops.

NATS Subjects:
    Game Bridge (subscribed):
        rosey.platform.game.action.succeeded - Player casts (always on)
        rosey.platform.game.status.changed - Player status updates
                                             (only while counting down)

    Game Bridge (requests):
        rosey.platform.game.ping - Bridge presence check at load
        rosey.platform.game.status.query - Buff duration/expiration
        rosey.platform.game.context.query - Player group and class

    Command Handlers:
        rosey.command.shroud.status - Show countdown state
        rosey.command.shroud.config - Show or change settings

    Chat:
        rosey.chat.{channel}.send - Countdown lines

    Events (Published):
        rosey.event.shroud.started - Countdown started
        rosey.event.shroud.ended - Countdown ended
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from nats.aio.client import Client as NATS

try:
    from .announcer import Announcer
    from .bridge import GameBridge
    from .config import ShroudWarningConfig, update_setting
    from .engine import CountdownEngine, CountdownState
    from .errors import ConfigKeyError, HostUnavailableError
    from .gate import Applicability, TriggerGate, always_applicable
    from .subjects import Subjects
    from .subscriptions import SubscriptionGateway
except ImportError:
    from announcer import Announcer
    from bridge import GameBridge
    from config import ShroudWarningConfig, update_setting
    from engine import CountdownEngine, CountdownState
    from errors import ConfigKeyError, HostUnavailableError
    from gate import Applicability, TriggerGate, always_applicable
    from subjects import Subjects
    from subscriptions import SubscriptionGateway


class ShroudWarningPlugin:
    """
    Shroud countdown plugin.

    Commands:
        !shroud status - Show whether a countdown is running
        !shroud config - Show current settings
        !shroud config <key> <value> - Change a setting
        !shroud config reset - Restore default settings

    Features:
        - Countdown announced in SAY, YELL, PARTY or RAID
        - Numbers announced early by a configurable offset
        - Real buff duration read from the game after a short settle delay
        - Early cancellation detected from status updates
        - Optional restriction to party or raid groups
        - Optional class gate (only listen on a given class)

    Args:
        nats_client: Connected NATS client for messaging.
        config: Plugin configuration dictionary. Normalised in place on
                initialize() and re-read on every access.
        applicability: Async predicate deciding at load whether casts are
                       listened for. Defaults to always.
        clock: Time source matching the bridge's expiration timestamps.
    """

    # Plugin metadata
    NAMESPACE = "shroud-warning"
    VERSION = "1.0.0"
    DESCRIPTION = "Announce a Shroud of Concealment countdown in chat"

    # NATS subjects - Commands
    SUBJECT_STATUS = Subjects.COMMAND_STATUS
    SUBJECT_CONFIG = Subjects.COMMAND_CONFIG

    # NATS subjects - Events
    EVENT_STARTED = Subjects.EVENT_STARTED
    EVENT_ENDED = Subjects.EVENT_ENDED

    CONFIG_USAGE = (
        "Usage: !shroud config [<setting> <value> | reset]\n"
        "Examples: !shroud config countdown_start 5, "
        "!shroud config chat_channel yell, !shroud config scope_filters party"
    )

    def __init__(
        self,
        nats_client: NATS,
        config: Optional[Dict[str, Any]] = None,
        applicability: Applicability = always_applicable,
        clock: Callable[[], float] = time.time,
    ):
        self.nats = nats_client
        self.config = config if config is not None else {}
        self.applicability = applicability
        self.logger = logging.getLogger(f"plugin.{self.NAMESPACE}")

        self.bridge = GameBridge(
            nats_client, timeout=lambda: self.get_config().nats_timeout
        )
        self.announcer = Announcer(nats_client, self.get_config)
        self.gateway = SubscriptionGateway(
            nats_client,
            on_action=self._handle_action,
            on_status_changed=self._handle_status_changed,
        )
        self.engine = CountdownEngine(
            announcer=self.announcer,
            gateway=self.gateway,
            bridge=self.bridge,
            get_config=self.get_config,
            clock=clock,
            on_started=self._on_countdown_started,
            on_ended=self._on_countdown_ended,
        )
        self.gate = TriggerGate(
            engine=self.engine,
            bridge=self.bridge,
            get_config=self.get_config,
            clock=clock,
        )

        self.applicable = False

        # Command subscription tracking
        self._subscriptions: List[Any] = []
        self._initialized = False

    def get_config(self) -> ShroudWarningConfig:
        """Current settings, validated from the raw config dict."""
        return ShroudWarningConfig.from_dict(self.config)

    async def initialize(self) -> None:
        """
        Initialize the plugin.

        - Normalises the stored settings
        - Checks the game bridge is answering
        - Subscribes to casts if the plugin applies to this character
        - Subscribes to command subjects

        Raises:
            HostUnavailableError: If the game bridge does not answer.
        """
        self.logger.info(f"Initializing {self.NAMESPACE} plugin v{self.VERSION}")

        ShroudWarningConfig.load(self.config)

        if not await self.bridge.ping():
            raise HostUnavailableError(
                f"{self.NAMESPACE} requires the game bridge "
                f"(no reply on {Subjects.HOST_PING})"
            )

        self.applicable = await self.applicability(self.bridge)
        if self.applicable:
            await self.gateway.subscribe_actions()
        else:
            self.logger.info("Not applicable to this character, casts are ignored")

        sub = await self.nats.subscribe(self.SUBJECT_STATUS, cb=self._handle_status)
        self._subscriptions.append(sub)

        sub = await self.nats.subscribe(self.SUBJECT_CONFIG, cb=self._handle_config)
        self._subscriptions.append(sub)

        self._initialized = True
        self.logger.info(f"{self.NAMESPACE} plugin loaded")

    async def shutdown(self) -> None:
        """
        Shutdown the plugin.

        - Cancels pending settle tasks
        - Stops any running countdown (no end message)
        - Unsubscribes from all subjects
        """
        await self.gate.cancel_pending()
        await self.engine.stop()
        await self.gateway.close()

        for sub in self._subscriptions:
            try:
                await sub.unsubscribe()
            except Exception as e:
                self.logger.warning(f"Error unsubscribing: {e}")
        self._subscriptions.clear()

        self.applicable = False
        self._initialized = False
        self.logger.info(f"{self.NAMESPACE} plugin unloaded")

    # =========================================================================
    # Game Bridge Handlers
    # =========================================================================

    async def _handle_action(self, msg) -> None:
        """
        Handle an action-succeeded notification.

        Message format:
        {
            "actor": "player",
            "action_id": 114018
        }
        """
        data = self._decode(msg)
        if data is None:
            return

        try:
            action_id = int(data.get("action_id"))
        except (TypeError, ValueError):
            self.logger.debug(f"Ignoring action without id: {data}")
            return

        try:
            await self.gate.action_succeeded(data.get("actor"), action_id)
        except Exception as e:
            self.logger.exception(f"Error handling action: {e}")

    async def _handle_status_changed(self, msg) -> None:
        """
        Handle a status-changed notification.

        Message format:
        {
            "actor": "player"
        }
        """
        data = self._decode(msg)
        if data is None:
            return

        try:
            await self.engine.status_changed(data.get("actor"))
        except Exception as e:
            self.logger.exception(f"Error handling status change: {e}")

    # =========================================================================
    # Command Handlers
    # =========================================================================

    async def _handle_status(self, msg) -> None:
        """
        Handle !shroud status command.

        Response format:
        {
            "success": true,
            "result": {
                "active": true,
                "remaining": 7.4,
                "start_from": 10,
                "last_announced": 8
            }
        }
        """
        state = self.engine.state
        last_announced = state.last_announced_second
        if not state.active or last_announced > state.start_from:
            last_announced = None

        await self._respond(msg, {
            "success": True,
            "result": {
                "active": state.active,
                "remaining": round(self.engine.remaining, 1),
                "start_from": state.start_from,
                "last_announced": last_announced,
                "listening": self.gateway.actions_subscribed,
            }
        })

    async def _handle_config(self, msg) -> None:
        """
        Handle !shroud config [<key> <value> | reset] command.

        Message format:
        {
            "channel": "string",
            "user": "string",
            "args": "countdown_start 5"
        }
        """
        data = self._decode(msg)
        if data is None:
            await self._respond(msg, {"success": False, "error": "Invalid message format"})
            return

        args = str(data.get("args", "")).strip()
        if not args:
            await self._respond(msg, {
                "success": True,
                "result": self.get_config().to_dict(),
            })
            return

        if args.lower() == "reset":
            self.config.clear()
            config = ShroudWarningConfig.load(self.config)
            self.logger.info(
                f"Settings reset to defaults by {data.get('user', 'unknown')}"
            )
            await self._respond(msg, {"success": True, "result": config.to_dict()})
            return

        parts = args.split(None, 1)
        if len(parts) < 2:
            await self._respond(msg, {"success": False, "error": self.CONFIG_USAGE})
            return

        key, value = parts
        try:
            config = update_setting(self.config, key, value)
        except ConfigKeyError as e:
            await self._respond(msg, {"success": False, "error": f"❌ {e}"})
            return

        self.logger.info(
            f"Setting {key} changed by {data.get('user', 'unknown')}"
        )
        await self._respond(msg, {"success": True, "result": config.to_dict()})

    # =========================================================================
    # Countdown Events
    # =========================================================================

    async def _on_countdown_started(
        self, state: CountdownState, total_duration: float
    ) -> None:
        """Emit started event."""
        if not self.get_config().emit_events:
            return
        await self._emit_event(self.EVENT_STARTED, {
            "duration": total_duration,
            "expiration": state.expiration_time,
            "start_from": state.start_from,
        })

    async def _on_countdown_ended(self, reason: str) -> None:
        """Emit ended event."""
        if not self.get_config().emit_events:
            return
        await self._emit_event(self.EVENT_ENDED, {"reason": reason})

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _decode(self, msg) -> Optional[Dict[str, Any]]:
        """Decode a JSON object message, logging and dropping bad ones."""
        try:
            data = json.loads(msg.data.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(f"Invalid message format: {e}")
            return None

        if not isinstance(data, dict):
            self.logger.error(f"Invalid message format: {data!r}")
            return None
        return data

    async def _respond(self, msg, data: Dict[str, Any]) -> None:
        """Send JSON response to NATS message."""
        if not msg.reply:
            return
        try:
            await msg.respond(json.dumps(data).encode())
        except Exception as e:
            self.logger.error(f"Error sending response: {e}")

    async def _emit_event(self, event_type: str, data: dict) -> None:
        """
        Emit an event via NATS.

        Args:
            event_type: The event subject.
            data: Event data.
        """
        event = {
            "event": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **data
        }
        try:
            await self.nats.publish(event_type, json.dumps(event).encode())
        except Exception as e:
            self.logger.debug(f"Could not publish event {event_type}: {e}")
