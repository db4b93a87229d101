"""
tests/test_gate.py

Unit tests for TriggerGate and applicability predicates.
"""

import asyncio
import pytest

from conftest import chat_messages
from engine import SHROUD_EFFECT_ID
from gate import TriggerGate, always_applicable, class_gate
from subjects import Subjects


@pytest.fixture
def gate(engine, bridge, get_config, clock):
    """Trigger gate with no settle delay."""
    return TriggerGate(
        engine=engine,
        bridge=bridge,
        get_config=get_config,
        clock=clock,
        settle_delay=0,
    )


async def settle(gate):
    """Wait for all scheduled settle tasks."""
    if gate._pending:
        await asyncio.wait(list(gate._pending))


def requested_subjects(nats):
    return [subject for subject, _ in nats.requests]


# =============================================================================
# Filtering
# =============================================================================

class TestFiltering:
    """Tests for which casts are accepted."""

    @pytest.mark.asyncio
    async def test_player_cast_accepted(self, gate, engine):
        """The player's Shroud cast starts a countdown."""
        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is True
        await settle(gate)

        assert engine.active is True
        assert engine.state.expiration_time == 1015.0
        assert engine.state.start_from == 10

        await engine.stop()

    @pytest.mark.asyncio
    async def test_other_actor_ignored(self, gate, engine):
        """Casts by other units are ignored."""
        assert await gate.action_succeeded("party1", SHROUD_EFFECT_ID) is False
        assert gate.pending_count == 0
        assert engine.active is False

    @pytest.mark.asyncio
    async def test_other_action_ignored(self, gate, engine):
        """Other actions are ignored."""
        assert await gate.action_succeeded("player", 1856) is False
        assert gate.pending_count == 0

    @pytest.mark.asyncio
    async def test_ignored_while_active(self, gate, engine, clock, mock_nats):
        """A cast during a running countdown does nothing."""
        await engine.start(clock() + 15, 15)
        mock_nats.requests.clear()

        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is False
        assert mock_nats.requests == []

        await engine.stop()

    @pytest.mark.asyncio
    async def test_no_context_query_without_filters(self, gate, engine, mock_nats):
        """Without scope filters the context is never queried."""
        await gate.action_succeeded("player", SHROUD_EFFECT_ID)
        await settle(gate)

        assert Subjects.CONTEXT_QUERY not in requested_subjects(mock_nats)

        await engine.stop()


# =============================================================================
# Scope Filters
# =============================================================================

class TestScopeFilters:
    """Tests for group scope filters at trigger time."""

    @pytest.mark.asyncio
    async def test_solo_rejected_by_party_filter(self, gate, settings, mock_nats):
        """Party filter rejects casts while solo."""
        settings["scope_filters"] = {"party": True}
        mock_nats.replies[Subjects.CONTEXT_QUERY] = {"group": None}

        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is False
        assert gate.pending_count == 0

    @pytest.mark.asyncio
    async def test_matching_group_accepted(self, gate, engine, settings, mock_nats):
        """Party filter accepts casts in a party."""
        settings["scope_filters"] = {"party": True}
        mock_nats.replies[Subjects.CONTEXT_QUERY] = {"group": "PARTY"}

        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is True
        await settle(gate)
        assert engine.active is True

        await engine.stop()

    @pytest.mark.asyncio
    async def test_other_group_rejected(self, gate, settings, mock_nats):
        """Raid filter rejects casts in a party."""
        settings["scope_filters"] = {"raid": True}
        mock_nats.replies[Subjects.CONTEXT_QUERY] = {"group": "party"}

        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is False

    @pytest.mark.asyncio
    async def test_context_unavailable_rejected(self, gate, settings, mock_nats):
        """With filters set, an unanswered context query rejects the cast."""
        settings["scope_filters"] = {"party": True}
        mock_nats.replies[Subjects.CONTEXT_QUERY] = asyncio.TimeoutError()

        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is False


# =============================================================================
# Duration Reading
# =============================================================================

class TestReadDuration:
    """Tests for reading the buff after the settle delay."""

    @pytest.mark.asyncio
    async def test_reads_bridge_values(self, gate, mock_nats):
        """Reported duration and expiration are used."""
        mock_nats.replies[Subjects.STATUS_QUERY] = {
            "present": True, "duration": 18, "expiration": 1017.5
        }

        assert await gate.read_duration() == (18.0, 1017.5)

    @pytest.mark.asyncio
    async def test_queries_tracked_effect(self, gate, mock_nats):
        """The status query names the player and the effect."""
        await gate.read_duration()

        assert mock_nats.requests[-1] == (
            Subjects.STATUS_QUERY, {"actor": "player", "effect_id": SHROUD_EFFECT_ID}
        )

    @pytest.mark.asyncio
    async def test_unavailable_falls_back(self, gate, clock, mock_nats):
        """No reply: base duration from now."""
        clock.now = 1500.0
        mock_nats.replies[Subjects.STATUS_QUERY] = asyncio.TimeoutError()

        assert await gate.read_duration() == (15, 1515.0)

    @pytest.mark.asyncio
    async def test_absent_falls_back(self, gate, clock, mock_nats):
        """Buff not found yet: base duration from now."""
        clock.now = 1500.0
        mock_nats.replies[Subjects.STATUS_QUERY] = {"present": False}

        assert await gate.read_duration() == (15, 1515.0)

    @pytest.mark.asyncio
    async def test_zero_values_fall_back(self, gate, clock, mock_nats):
        """Zero duration or expiration are treated as unknown."""
        clock.now = 1500.0
        mock_nats.replies[Subjects.STATUS_QUERY] = {
            "present": True, "duration": 0, "expiration": 0
        }

        assert await gate.read_duration() == (15, 1515.0)

    @pytest.mark.asyncio
    async def test_fallback_countdown_runs(self, gate, engine, clock, mock_nats):
        """A countdown still starts when the buff cannot be read."""
        clock.now = 1500.0
        mock_nats.replies[Subjects.STATUS_QUERY] = asyncio.TimeoutError()

        await gate.action_succeeded("player", SHROUD_EFFECT_ID)
        await settle(gate)

        assert engine.active is True
        assert engine.state.expiration_time == 1515.0
        assert chat_messages(mock_nats) == ["Shroud Activated! (15s)"]

        await engine.stop()


# =============================================================================
# Settle Tasks
# =============================================================================

class TestSettle:
    """Tests for the settle task lifecycle."""

    @pytest.mark.asyncio
    async def test_concurrent_casts_start_once(self, gate, engine, mock_nats):
        """Two casts accepted before either settles give one countdown."""
        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is True
        assert await gate.action_succeeded("player", SHROUD_EFFECT_ID) is True
        assert gate.pending_count == 2

        await settle(gate)

        assert engine.active is True
        assert chat_messages(mock_nats) == ["Shroud Activated! (15s)"]
        engine.on_ended.assert_not_awaited()

        await engine.stop()

    @pytest.mark.asyncio
    async def test_settle_skips_when_started_meanwhile(self, gate, engine, clock):
        """A countdown started during the delay is not replaced."""
        await gate.action_succeeded("player", SHROUD_EFFECT_ID)
        await engine.start(clock() + 12, 12)

        await settle(gate)

        assert engine.state.expiration_time == clock() + 12
        engine.on_ended.assert_not_awaited()

        await engine.stop()

    @pytest.mark.asyncio
    async def test_cancel_pending(self, engine, bridge, get_config, clock):
        """Pending settle tasks are cancelled before they start anything."""
        gate = TriggerGate(engine, bridge, get_config, clock=clock, settle_delay=10)

        await gate.action_succeeded("player", SHROUD_EFFECT_ID)
        assert gate.pending_count == 1

        await gate.cancel_pending()

        assert gate.pending_count == 0
        assert engine.active is False

    @pytest.mark.asyncio
    async def test_cancel_pending_when_empty(self, gate):
        """Cancelling with nothing pending is harmless."""
        await gate.cancel_pending()
        assert gate.pending_count == 0


# =============================================================================
# Applicability
# =============================================================================

class TestApplicability:
    """Tests for load-time applicability predicates."""

    @pytest.mark.asyncio
    async def test_always_applicable(self, bridge):
        assert await always_applicable(bridge) is True

    @pytest.mark.asyncio
    async def test_class_gate_matches(self, bridge, mock_nats):
        """Class comparison is case-insensitive."""
        mock_nats.replies[Subjects.CONTEXT_QUERY] = {"class": "rogue"}
        assert await class_gate("Rogue")(bridge) is True

    @pytest.mark.asyncio
    async def test_class_gate_other_class(self, bridge, mock_nats):
        mock_nats.replies[Subjects.CONTEXT_QUERY] = {"class": "MAGE"}
        assert await class_gate("ROGUE")(bridge) is False

    @pytest.mark.asyncio
    async def test_class_gate_unavailable(self, bridge, mock_nats):
        """No context reply means not applicable."""
        mock_nats.replies[Subjects.CONTEXT_QUERY] = asyncio.TimeoutError()
        assert await class_gate("ROGUE")(bridge) is False
