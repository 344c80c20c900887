"""Tests for roast_council/orchestrator.py."""

import pytest

from roast_council.errors import AgentUnavailableError
from roast_council.models import AgentIdentity, FailureKind
from roast_council.orchestrator import Phase, RunOptions
from tests.conftest import FakeRunner, failed_result, ok_result, task_prompt_of

CLAUDE, CODEX, GEMINI = AgentIdentity.CLAUDE, AgentIdentity.CODEX, AgentIdentity.GEMINI


async def test_analyze_all_agents_succeed(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, GEMINI)

    result = await orchestrator.analyze("code", "src/app.py")

    assert result.success
    assert result.execution_summary.total_agents == 3
    assert result.execution_summary.successful_agents == 3
    assert result.execution_summary.selection_method == "multi-agent"
    assert "## Critic 1: Claude Code" in result.synthesis


async def test_analyze_partial_failure_counts(make_orchestrator):
    runner = FakeRunner({
        "codex": failed_result(FailureKind.TIMEOUT),
        "gemini": failed_result(FailureKind.NOT_FOUND),
    })
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, GEMINI)

    result = await orchestrator.analyze("code", "src/app.py")

    assert result.success
    assert result.execution_summary.failed_agents == 2
    assert result.execution_summary.successful_agents == 1
    failures = {r.agent: r.failure for r in result.responses if not r.success}
    assert failures == {CODEX: FailureKind.TIMEOUT, GEMINI: FailureKind.NOT_FOUND}
    assert "## Failed Critics" in result.synthesis


async def test_analyze_all_fail_is_not_success(make_orchestrator):
    runner = FakeRunner({
        "claude": failed_result(),
        "codex": failed_result(),
    })
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX)

    result = await orchestrator.analyze("idea", "Uber for cats")

    assert not result.success
    assert result.synthesis.startswith("# Analysis Failed")


async def test_results_keep_dispatch_order(make_orchestrator):
    runner = FakeRunner(delays={"claude": 0.2, "codex": 0.05, "gemini": 0.0})
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, GEMINI)

    result = await orchestrator.analyze("code", "src/")

    assert [r.agent for r in result.responses] == [CLAUDE, CODEX, GEMINI]


async def test_concurrency_ceiling(make_orchestrator):
    runner = FakeRunner(delays={"claude": 0.05, "codex": 0.05, "gemini": 0.05})
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, GEMINI, max_concurrent=1)

    result = await orchestrator.analyze("code", "src/")

    assert result.execution_summary.successful_agents == 3
    assert runner.max_running == 1


async def test_agents_under_ceiling_run_together(make_orchestrator):
    runner = FakeRunner(delays={"claude": 0.1, "codex": 0.1})
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, max_concurrent=2)

    await orchestrator.analyze("code", "src/")

    assert runner.max_running == 2


async def test_no_agents_available_raises(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner)

    with pytest.raises(AgentUnavailableError):
        await orchestrator.analyze("code", "src/")
    assert runner.calls == []


async def test_host_agent_excluded(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, current=CLAUDE)

    result = await orchestrator.analyze("code", "src/")

    assert [r.agent for r in result.responses] == [CODEX]
    assert result.execution_summary.selected_agent == CODEX


async def test_preferred_agent_is_user_specified(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX, GEMINI)

    result = await orchestrator.analyze("code", "src/", options=RunOptions(preferred=GEMINI))

    assert [c["command"] for c in runner.calls] == ["gemini"]
    assert result.execution_summary.selection_method == "user-specified"


async def test_model_override_and_workdir_reach_invocation(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner, CODEX)

    await orchestrator.analyze(
        "code", "src/", options=RunOptions(models={CODEX: "o3"}, working_directory="/repo"),
    )

    args = runner.calls[0]["args"]
    assert args[args.index("--model") + 1] == "o3"
    assert args[args.index("--cd") + 1] == "/repo"
    assert runner.calls[0]["cwd"] == "/repo"


async def test_task_prompt_is_built_from_domain_template(make_orchestrator):
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner, CLAUDE)

    await orchestrator.analyze("code", "src/$HOME", context="uses `eval`")

    prompt = task_prompt_of(runner.calls[0])
    assert prompt == "Review code at src/\\$HOME. Context: uses \\`eval\\`"
    args = runner.calls[0]["args"]
    assert args[args.index("--system-prompt") + 1] == "You review code."


async def test_failure_error_includes_stderr_tail(make_orchestrator):
    runner = FakeRunner({"claude": failed_result(stderr="rate limited\n")})
    orchestrator = make_orchestrator(runner, CLAUDE)

    result = await orchestrator.analyze("code", "src/")

    error = result.responses[0].error
    assert "simulated exit_error" in error
    assert "rate limited" in error


async def test_unexpected_runner_exception_becomes_failure(make_orchestrator):
    def explode(call):
        raise RuntimeError("runner bug")

    runner = FakeRunner({"codex": explode})
    orchestrator = make_orchestrator(runner, CLAUDE, CODEX)

    result = await orchestrator.analyze("code", "src/")

    assert result.success
    codex = next(r for r in result.responses if r.agent == CODEX)
    assert codex.error == "Unexpected error: runner bug"


async def test_on_output_and_phases_observed(make_orchestrator):
    runner = FakeRunner({"claude": ok_result("line one\nline two")})
    orchestrator = make_orchestrator(runner, CLAUDE)
    lines: list[tuple] = []
    phases: list[Phase] = []

    await orchestrator.analyze(
        "code",
        "src/",
        options=RunOptions(
            on_output=lambda agent, stream, line: lines.append((agent, stream, line)),
            on_phase=phases.append,
        ),
    )

    assert lines == [(CLAUDE, "stdout", "line one"), (CLAUDE, "stdout", "line two")]
    assert phases == [
        Phase.DETECTING, Phase.SELECTING, Phase.DISPATCHING,
        Phase.COLLECTING, Phase.SYNTHESIZING, Phase.DONE,
    ]
