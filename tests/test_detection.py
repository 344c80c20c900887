"""Tests for roast_council/detection.py."""

from roast_council.agents.registry import build_invocations
from roast_council.detection import AgentContext, detect_current_agent, probe_agents
from roast_council.models import AgentIdentity, CLIContext, FailureKind
from tests.conftest import FakeRunner, failed_result


def test_detect_current_agent_from_single_signal():
    assert detect_current_agent({"CLAUDECODE": "1"}) == AgentIdentity.CLAUDE
    assert detect_current_agent({"CODEX_SANDBOX": "seatbelt"}) == AgentIdentity.CODEX


def test_detect_current_agent_conflicting_signals_is_unknown():
    assert detect_current_agent({"CLAUDECODE": "1", "GEMINI_CLI": "1"}) is None


def test_detect_current_agent_no_signals_is_unknown():
    assert detect_current_agent({}) is None


def test_detect_current_agent_falls_back_to_launcher():
    assert detect_current_agent({"_": "/usr/local/bin/gemini"}) == AgentIdentity.GEMINI


def test_detect_current_agent_ignores_empty_values():
    assert detect_current_agent({"CLAUDECODE": ""}) is None


async def test_probe_agents_reports_missing_binaries():
    runner = FakeRunner({"codex": failed_result(FailureKind.NOT_FOUND)})
    results = await probe_agents(runner, build_invocations(), timeout_sec=5)
    assert results[AgentIdentity.CLAUDE] == (True, "")
    assert results[AgentIdentity.CODEX][0] is False
    assert all(call["args"] == ["--version"] for call in runner.calls)
    assert all(call["timeout_sec"] == 5 for call in runner.calls)


async def test_agent_context_detects_once():
    runner = FakeRunner({"gemini": failed_result(FailureKind.NOT_FOUND)})
    context = AgentContext(runner, build_invocations(), environ={"CLAUDECODE": "1"})

    first = await context.get()
    second = await context.get()

    assert first is second
    assert first.available_agents == {AgentIdentity.CLAUDE, AgentIdentity.CODEX}
    assert first.current_agent == AgentIdentity.CLAUDE
    assert len(runner.calls) == 3


async def test_agent_context_refresh_reprobes():
    runner = FakeRunner()
    context = AgentContext(runner, build_invocations(), environ={})
    await context.get()
    runner.results["claude"] = failed_result(FailureKind.NOT_FOUND)

    refreshed = await context.refresh()

    assert len(runner.calls) == 6
    assert AgentIdentity.CLAUDE not in refreshed.available_agents


async def test_fixed_context_never_probes():
    fixed = CLIContext(available_agents={AgentIdentity.CODEX}, current_agent=None)
    context = AgentContext.fixed(fixed)
    assert await context.get() is fixed
    assert await context.refresh() is fixed
