"""
plugins/shroud_warning/config.py

Settings for the shroud warning plugin.

The plugin's raw config dict is the settings store. ShroudWarningConfig is
a validated snapshot of it: every value is clamped or defaulted, so
building a snapshot never fails. load() also writes the corrected values
back into the raw dict and removes keys from older versions.
"""

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional

try:
    from .errors import ConfigKeyError
except ImportError:
    from errors import ConfigKeyError


logger = logging.getLogger(__name__)


# Countdown start (0 = use full buff duration)
MIN_COUNTDOWN_START = 0
MAX_COUNTDOWN_START = 20
DEFAULT_COUNTDOWN_START = 10

# Announce numbers this many seconds early
MIN_COUNTDOWN_OFFSET = 0.0
MAX_COUNTDOWN_OFFSET = 1.0
DEFAULT_COUNTDOWN_OFFSET = 0.7

MIN_TICK_INTERVAL = 0.01
MAX_TICK_INTERVAL = 1.0
DEFAULT_TICK_INTERVAL = 0.05

DEFAULT_NATS_TIMEOUT = 2.0

DEFAULT_ACTIVATION_MESSAGE = "Shroud Activated! (%ds)"
DEFAULT_END_MESSAGE = "Shroud Ending"

# Settings removed in earlier versions
LEGACY_KEYS = (
    "countdown_mode",
    "final_threshold",
    "cancel_message",
    "show_cancel",
    "countdownMode",
    "finalThreshold",
    "cancelMsg",
    "showCancel",
)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


class ChatChannel(Enum):
    """Chat channels a countdown can be announced in."""

    SAY = "SAY"
    YELL = "YELL"
    PARTY = "PARTY"
    RAID = "RAID"

    @classmethod
    def parse(cls, value: Any) -> "ChatChannel":
        """Parse a channel name, falling back to SAY."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.SAY


class GroupKind(Enum):
    """Group types a scope filter can require."""

    PARTY = "party"
    RAID = "raid"


def _as_number(value: Any, default: float) -> float:
    """Convert to a finite float, or return default."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _as_bool(value: Any, default: bool) -> bool:
    """Convert common bool spellings, or return default."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return default


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_offset(value: float) -> float:
    """Round to the nearest 0.1, halves rounding up."""
    return math.floor(value * 10 + 0.5) / 10


def _scope_filters(value: Any) -> Dict[str, bool]:
    """Normalise scope filters to {kind: bool} for known group kinds."""
    if isinstance(value, str):
        enabled = {part.strip().lower() for part in value.split(",") if part.strip()}
        value = {kind: True for kind in enabled}
    elif isinstance(value, (list, tuple, set)):
        value = {str(kind).lower(): True for kind in value}
    elif not isinstance(value, dict):
        return {}

    known = {kind.value for kind in GroupKind}
    return {
        str(kind).lower(): _as_bool(enabled, False)
        for kind, enabled in value.items()
        if str(kind).lower() in known
    }


@dataclass
class ShroudWarningConfig:
    """
    Validated settings snapshot.

    Attributes:
        countdown_start: Highest number to announce (0 = full duration).
        countdown_offset: Seconds subtracted from the remaining time before
                          picking the number to announce.
        chat_channel: Channel to announce in.
        scope_filters: Group kinds the countdown is restricted to. No
                       enabled filter means no restriction.
        show_activation: Send activation_message when the countdown starts.
        activation_message: Template, %d is replaced by the buff duration.
        show_end: Send end_message when the countdown ends.
        end_message: Message sent when the countdown ends.
        emit_events: Publish started/ended events.
        tick_interval: Seconds between countdown samples.
        nats_timeout: Timeout for bridge requests.
    """

    countdown_start: int = DEFAULT_COUNTDOWN_START
    countdown_offset: float = DEFAULT_COUNTDOWN_OFFSET
    chat_channel: ChatChannel = ChatChannel.SAY
    scope_filters: Dict[str, bool] = field(default_factory=dict)
    show_activation: bool = True
    activation_message: str = DEFAULT_ACTIVATION_MESSAGE
    show_end: bool = True
    end_message: str = DEFAULT_END_MESSAGE
    emit_events: bool = True
    tick_interval: float = DEFAULT_TICK_INTERVAL
    nats_timeout: float = DEFAULT_NATS_TIMEOUT

    def __post_init__(self):
        """Clamp and default every field."""
        start = _as_number(self.countdown_start, DEFAULT_COUNTDOWN_START)
        self.countdown_start = int(
            _clamp(math.floor(start), MIN_COUNTDOWN_START, MAX_COUNTDOWN_START)
        )

        offset = _as_number(self.countdown_offset, DEFAULT_COUNTDOWN_OFFSET)
        offset = _clamp(offset, MIN_COUNTDOWN_OFFSET, MAX_COUNTDOWN_OFFSET)
        self.countdown_offset = round_offset(offset)

        self.chat_channel = ChatChannel.parse(self.chat_channel)
        self.scope_filters = _scope_filters(self.scope_filters)

        self.show_activation = _as_bool(self.show_activation, True)
        self.show_end = _as_bool(self.show_end, True)
        self.emit_events = _as_bool(self.emit_events, True)

        if not isinstance(self.activation_message, str):
            self.activation_message = DEFAULT_ACTIVATION_MESSAGE
        if not isinstance(self.end_message, str):
            self.end_message = DEFAULT_END_MESSAGE

        tick = _as_number(self.tick_interval, DEFAULT_TICK_INTERVAL)
        self.tick_interval = _clamp(tick, MIN_TICK_INTERVAL, MAX_TICK_INTERVAL)

        timeout = _as_number(self.nats_timeout, DEFAULT_NATS_TIMEOUT)
        self.nats_timeout = timeout if timeout > 0 else DEFAULT_NATS_TIMEOUT

    @classmethod
    def default(cls) -> "ShroudWarningConfig":
        """Get default settings."""
        return cls()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ShroudWarningConfig":
        """
        Build a snapshot from a raw config dict without modifying it.

        Unknown keys are ignored.
        """
        data = data or {}
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def load(cls, data: Dict[str, Any]) -> "ShroudWarningConfig":
        """
        Normalise a raw config dict in place and return its snapshot.

        Removes legacy keys, fills in defaults and writes clamped values
        back so the stored settings are always valid.
        """
        for key in LEGACY_KEYS:
            if data.pop(key, None) is not None:
                logger.debug(f"Dropped legacy setting: {key}")

        config = cls.from_dict(data)
        data.update(config.to_dict())
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        data = asdict(self)
        data["chat_channel"] = self.chat_channel.value
        data["scope_filters"] = dict(self.scope_filters)
        return data

    @property
    def has_scope_filters(self) -> bool:
        """Whether any scope filter is enabled."""
        return any(self.scope_filters.values())

    def scope_allows(self, group: Optional[str]) -> bool:
        """
        Check the current group kind against the scope filters.

        Args:
            group: Current group kind ("party", "raid") or None if ungrouped.

        Returns:
            True if no filter is enabled or an enabled filter matches.
        """
        if not self.has_scope_filters:
            return True
        if not group:
            return False
        return self.scope_filters.get(str(group).lower(), False)


# Settings that can be changed from chat
EDITABLE_KEYS = (
    "countdown_start",
    "countdown_offset",
    "chat_channel",
    "scope_filters",
    "show_activation",
    "activation_message",
    "show_end",
    "end_message",
)


def update_setting(
    data: Dict[str, Any], key: str, value: str
) -> ShroudWarningConfig:
    """
    Change one setting in a raw config dict and re-normalise it.

    Args:
        data: Raw config dict (modified in place).
        key: Setting name, one of EDITABLE_KEYS.
        value: New value as typed in chat. "none" clears scope filters.

    Returns:
        The normalised snapshot after the change.

    Raises:
        ConfigKeyError: If key is not an editable setting.
    """
    key = key.strip().lower()
    if key not in EDITABLE_KEYS:
        raise ConfigKeyError(
            f"Unknown setting '{key}'. Use one of: {', '.join(EDITABLE_KEYS)}"
        )

    if key == "scope_filters" and value.strip().lower() == "none":
        data[key] = {}
    else:
        data[key] = value

    return ShroudWarningConfig.load(data)
