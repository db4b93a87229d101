"""
tests/conftest.py

Shared fixtures for shroud warning plugin tests.
"""

import sys
from pathlib import Path

# Add plugin directory to path for local imports
PLUGIN_DIR = Path(__file__).parent.parent
if str(PLUGIN_DIR) not in sys.path:
    sys.path.insert(0, str(PLUGIN_DIR))

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from announcer import Announcer
from bridge import GameBridge
from config import ShroudWarningConfig
from engine import CountdownEngine
from subjects import Subjects
from subscriptions import SubscriptionGateway


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Fake clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def mock_nats():
    """
    Create a mock NATS client for testing.

    Requests are answered from nats.replies (subject -> dict). A reply
    that is an exception instance is raised instead.
    """
    nats = AsyncMock()
    nats.publish = AsyncMock()

    # Track subscriptions
    nats._subscriptions = []

    async def mock_subscribe(subject, cb=None):
        sub = MagicMock()
        sub.subject = subject
        sub.callback = cb
        sub.unsubscribe = AsyncMock()
        nats._subscriptions.append(sub)
        return sub

    nats.subscribe = mock_subscribe

    nats.replies = {
        Subjects.HOST_PING: {"ok": True},
        Subjects.STATUS_QUERY: {"present": True, "duration": 15, "expiration": 1015.0},
        Subjects.CONTEXT_QUERY: {"group": None, "class": "ROGUE"},
    }
    nats.requests = []

    async def mock_request(subject, data, timeout=2.0):
        nats.requests.append((subject, json.loads(data.decode())))
        reply = nats.replies.get(subject, {})
        if isinstance(reply, Exception):
            raise reply
        response = MagicMock()
        response.data = json.dumps(reply).encode()
        return response

    nats.request = mock_request

    return nats


@pytest.fixture
def mock_message():
    """Factory for creating mock NATS messages."""
    def _make_message(data, reply_to: str = "rosey.reply.123"):
        msg = MagicMock()
        msg.data = json.dumps(data).encode()
        msg.reply = reply_to
        msg.respond = AsyncMock()
        return msg
    return _make_message


@pytest.fixture
def settings():
    """Raw settings dict, edited by tests to change engine behaviour."""
    return {
        "countdown_start": 10,
        "countdown_offset": 0.7,
        "chat_channel": "SAY",
        # Long interval keeps the background ticker out of manual tick tests
        "tick_interval": 1.0,
    }


@pytest.fixture
def get_config(settings):
    """Settings snapshot factory, re-read on every call."""
    return lambda: ShroudWarningConfig.from_dict(settings)


@pytest.fixture
def gateway(mock_nats):
    """Subscription gateway with no-op handlers."""
    return SubscriptionGateway(
        mock_nats, on_action=AsyncMock(), on_status_changed=AsyncMock()
    )


@pytest.fixture
def bridge(mock_nats):
    """Game bridge with a short timeout."""
    return GameBridge(mock_nats, timeout=lambda: 0.5)


@pytest.fixture
def engine(mock_nats, gateway, bridge, get_config, clock):
    """Countdown engine on the fake clock."""
    return CountdownEngine(
        announcer=Announcer(mock_nats, get_config),
        gateway=gateway,
        bridge=bridge,
        get_config=get_config,
        clock=clock,
        on_ended=AsyncMock(),
    )


def chat_messages(nats):
    """Messages published to chat, in order."""
    messages = []
    for call in nats.publish.call_args_list:
        subject, payload = call.args[0], call.args[1]
        if subject.startswith(f"{Subjects.CHAT}."):
            messages.append(json.loads(payload.decode())["message"])
    return messages


def published(nats, subject):
    """Decoded payloads published to one subject."""
    return [
        json.loads(call.args[1].decode())
        for call in nats.publish.call_args_list
        if call.args[0] == subject
    ]


def subscribed_subjects(nats):
    """Subjects with a live (not unsubscribed) mock subscription."""
    return [
        sub.subject for sub in nats._subscriptions
        if not sub.unsubscribe.called
    ]
