"""Tests for roast_council/synthesis.py."""

from roast_council.models import AgentIdentity, AgentResponse, DebateState, FailureKind, Stance
from roast_council.synthesis import build_execution_summary, synthesize_analysis, synthesize_debate

CLAUDE, CODEX = AgentIdentity.CLAUDE, AgentIdentity.CODEX


def _ok(agent, output="Found 3 bugs.", ms=100, round_number=None) -> AgentResponse:
    return AgentResponse(agent=agent, success=True, output=output, execution_time_ms=ms, round_number=round_number)


def _fail(agent, kind=FailureKind.TIMEOUT, round_number=None) -> AgentResponse:
    return AgentResponse(
        agent=agent, success=False, output="", execution_time_ms=50,
        error="Command timed out after 1500s: codex", failure=kind, round_number=round_number,
    )


def test_execution_summary_counts():
    summary = build_execution_summary([_ok(CLAUDE, ms=100), _fail(CODEX)], "multi-agent")
    assert summary.total_agents == 2
    assert summary.successful_agents == 1
    assert summary.failed_agents == 1
    assert summary.total_execution_ms == 150
    assert summary.selected_agent is None


def test_execution_summary_single_agent_is_selected():
    summary = build_execution_summary([_ok(CODEX)], "user-specified")
    assert summary.selected_agent == CODEX
    assert summary.selection_method == "user-specified"


def test_synthesize_analysis_labels_each_critic():
    report = synthesize_analysis([_ok(CLAUDE, "Claude findings"), _ok(CODEX, "Codex findings")], "code", "src/")
    assert report.startswith("# Critique (code): src/")
    assert "2 of 2 critics responded" in report
    assert "## Critic 1: Claude Code\n*Execution time: 100ms*\n\nClaude findings" in report
    assert "## Critic 2: Codex" in report
    assert "Failed Critics" not in report


def test_synthesize_analysis_lists_failures_by_name():
    report = synthesize_analysis([_ok(CLAUDE), _fail(CODEX)], "code", "src/")
    assert "1 of 2 critics responded" in report
    assert "## Failed Critics" in report
    assert "- **Codex** (timeout): Command timed out" in report


def test_synthesize_analysis_all_failed():
    report = synthesize_analysis([_fail(CLAUDE), _fail(CODEX, FailureKind.NOT_FOUND)], "idea", "x")
    assert report.startswith("# Analysis Failed")
    assert "All 2 agent call(s) failed:" in report
    assert "(not_found)" in report


def test_synthesize_debate_transcript():
    state = DebateState(
        topic="Rewrite in Rust?",
        positions={CLAUDE: Stance.ADVOCATE, CODEX: Stance.OPPONENT},
        transcript={CLAUDE: ["Yes.", "Still yes."], CODEX: ["No.", "No position stated."]},
        round=2,
    )
    responses = [
        _ok(CLAUDE, "Yes.", round_number=1), _ok(CODEX, "No.", round_number=1),
        _ok(CLAUDE, "Still yes.", round_number=2), _fail(CODEX, round_number=2),
    ]
    report = synthesize_debate(state, responses)
    assert report.startswith("# Debate: Rewrite in Rust?")
    assert "**Participants:** Claude Code (advocate), Codex (opponent)" in report
    assert "## Round 1: Opening Statements" in report
    assert "## Round 2: Rebuttals" in report
    assert "### Codex, opponent (50ms)\nNo position stated." in report
    assert "3 of 4 debate turns completed" in report
    assert "- Round 2: **Codex** (timeout)" in report
