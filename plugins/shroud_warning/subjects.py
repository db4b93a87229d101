"""
plugins/shroud_warning/subjects.py

NATS subjects used by the shroud warning plugin.

Subject Structure:
    rosey.platform.game.*   - Game bridge (events and queries)
    rosey.chat.{channel}.*  - Chat transmission
    rosey.command.shroud.*  - Chat commands routed to this plugin
    rosey.event.shroud.*    - Events emitted by this plugin
"""


class Subjects:
    """
    NATS subject constants for the game bridge and chat layer.

    Use these constants to ensure consistency between the plugin,
    the bridge and tests.
    """

    BASE = "rosey"

    GAME = f"{BASE}.platform.game"
    CHAT = f"{BASE}.chat"
    COMMANDS = f"{BASE}.command.shroud"
    EVENTS = f"{BASE}.event.shroud"

    # Game bridge
    HOST_PING = f"{GAME}.ping"
    ACTION_SUCCEEDED = f"{GAME}.action.succeeded"
    STATUS_CHANGED = f"{GAME}.status.changed"
    STATUS_QUERY = f"{GAME}.status.query"
    CONTEXT_QUERY = f"{GAME}.context.query"

    # Commands
    COMMAND_STATUS = f"{COMMANDS}.status"
    COMMAND_CONFIG = f"{COMMANDS}.config"

    # Events
    EVENT_STARTED = f"{EVENTS}.started"
    EVENT_ENDED = f"{EVENTS}.ended"

    @staticmethod
    def chat_send(channel: str) -> str:
        """Build chat send subject for a channel (SAY -> rosey.chat.say.send)"""
        return f"{Subjects.CHAT}.{channel.lower()}.send"
