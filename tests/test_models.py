"""Tests for roast_council/models.py dataclasses."""

import dataclasses

import pytest

from roast_council.models import AgentIdentity, AgentResponse, CacheStats, CLIContext, DebateState, Stance


def test_agent_identity_values_and_labels():
    assert [a.value for a in AgentIdentity] == ["claude", "codex", "gemini"]
    assert AgentIdentity.CLAUDE.label == "Claude Code"
    assert AgentIdentity.GEMINI.label == "Gemini CLI"
    assert AgentIdentity("codex") is AgentIdentity.CODEX


def test_agent_response_is_immutable():
    resp = AgentResponse(agent=AgentIdentity.CODEX, success=True, output="ok", execution_time_ms=5)
    with pytest.raises(dataclasses.FrozenInstanceError):
        resp.output = "changed"  # type: ignore[misc]


def test_agent_response_optional_fields():
    resp = AgentResponse(agent=AgentIdentity.CODEX, success=True, output="ok", execution_time_ms=5)
    assert resp.error is None
    assert resp.failure is None
    assert resp.round_number is None


def test_cli_context_defaults():
    ctx = CLIContext()
    assert ctx.available_agents == set()
    assert ctx.current_agent is None


def test_cache_stats_start_at_zero():
    assert CacheStats() == CacheStats(entries=0, total_size=0, hits=0, misses=0, evictions=0)


def test_debate_state_default_transcript():
    state = DebateState(topic="t", positions={AgentIdentity.CLAUDE: Stance.ADVOCATE})
    assert state.transcript == {}
    assert state.round == 0
