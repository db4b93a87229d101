"""
plugins/shroud_warning/__init__.py

Shroud of Concealment countdown plugin for Rosey.

Provides:
- Chat countdown when the player casts Shroud of Concealment
- Announcements shifted early by a safety offset
- Early cancellation detection via status updates
- Group scope filters and an optional class gate
"""

from .config import ChatChannel, GroupKind, ShroudWarningConfig
from .engine import CountdownEngine, CountdownState
from .errors import HostUnavailableError, ShroudWarningError
from .gate import TriggerGate, always_applicable, class_gate
from .plugin import ShroudWarningPlugin
from .subscriptions import SubscriptionGateway

__all__ = [
    "ChatChannel",
    "CountdownEngine",
    "CountdownState",
    "GroupKind",
    "HostUnavailableError",
    "ShroudWarningConfig",
    "ShroudWarningError",
    "ShroudWarningPlugin",
    "SubscriptionGateway",
    "TriggerGate",
    "always_applicable",
    "class_gate",
]
