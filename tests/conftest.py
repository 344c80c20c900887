"""Shared pytest fixtures and test doubles."""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import PromptsConfig
from roast_council.agents.registry import build_invocations
from roast_council.detection import AgentContext
from roast_council.models import AgentIdentity, AgentResponse, AnalysisResult, CLIContext, ExecutionSummary, FailureKind
from roast_council.orchestrator import AgentOrchestrator
from roast_council.process import ProcessResult


class FakeClock:
    """Callable clock for TTL tests."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ok_result(stdout: str = "looks terrible", duration_ms: int = 10) -> ProcessResult:
    return ProcessResult(stdout=stdout, stderr="", exit_code=0, duration_ms=duration_ms)


def failed_result(kind: FailureKind = FailureKind.EXIT_ERROR, stderr: str = "") -> ProcessResult:
    return ProcessResult(
        stdout="",
        stderr=stderr,
        exit_code=1 if kind == FailureKind.EXIT_ERROR else None,
        duration_ms=5,
        failure=kind,
        error=f"simulated {kind.value}",
    )


class FakeRunner:
    """Test double ProcessRunner.

    Records every call. Results are looked up by command name; a callable
    result is called with the recorded call dict. Tracks the peak number of
    concurrently running calls.
    """

    def __init__(
        self,
        results: dict[str, ProcessResult | Callable[[dict], ProcessResult]] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.results = results or {}
        self.delays = delays or {}
        self.calls: list[dict] = []
        self.running = 0
        self.max_running = 0
        self.shutdown = AsyncMock()

    async def run(self, command, args, *, timeout_sec, cwd=None, env=None, stdin_payload=None, on_output=None):
        call = {
            "command": command,
            "args": list(args),
            "timeout_sec": timeout_sec,
            "cwd": cwd,
            "env": env,
            "stdin": stdin_payload,
        }
        self.calls.append(call)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delays.get(command, 0.01))
        finally:
            self.running -= 1
        result = self.results.get(command)
        if callable(result):
            result = result(call)
        if result is None:
            result = ok_result(f"{command} says this is broken")
        if on_output is not None:
            for line in result.stdout.splitlines():
                on_output("stdout", line)
        return result

    def calls_for(self, command: str) -> list[dict]:
        return [c for c in self.calls if c["command"] == command]


def task_prompt_of(call: dict) -> str:
    """Recover the task prompt from a recorded call, whatever the convention."""
    if call["stdin"] is not None:
        return call["stdin"].split("ANALYZE:\n", 1)[1]
    args = call["args"]
    if "--prompt" in args:
        return args[args.index("--prompt") + 1]
    return args[-1]


def make_context(*agents: AgentIdentity, current: AgentIdentity | None = None) -> AgentContext:
    return AgentContext.fixed(CLIContext(available_agents=set(agents), current_agent=current))


def make_result(synthesis: str, success: bool = True, target: str = "src/") -> AnalysisResult:
    response = AgentResponse(
        agent=AgentIdentity.CLAUDE,
        success=success,
        output=synthesis if success else "",
        execution_time_ms=42,
        error=None if success else "simulated failure",
    )
    return AnalysisResult(
        success=success,
        responses=[response],
        synthesis=synthesis,
        analysis_kind="code",
        target=target,
        execution_summary=ExecutionSummary(
            total_agents=1,
            successful_agents=1 if success else 0,
            failed_agents=0 if success else 1,
            total_execution_ms=42,
            selected_agent=AgentIdentity.CLAUDE,
        ),
    )


@pytest.fixture
def prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system={
            "default": "Be brutal.",
            "code": "You review code.",
            "debate": "You are debating.",
        },
        tasks={
            "default": "Analyze {target} for {kind}. Context: {context}",
            "code": "Review code at {target}. Context: {context}",
        },
        debate_opening="OPENING on {topic} as {stance_label} ({stance_description}). Context: {context}",
        debate_rebuttal="REBUTTAL round {round} on {topic} as {stance_label}.\nOpponents:\n{opponent_statements}",
        stances={"advocate": "argue for it", "opponent": "argue against it"},
    )


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_orchestrator(prompts_config):
    def factory(
        runner: FakeRunner,
        *agents: AgentIdentity,
        current: AgentIdentity | None = None,
        max_concurrent: int = 3,
    ) -> AgentOrchestrator:
        return AgentOrchestrator(
            runner,
            build_invocations(),
            make_context(*agents, current=current),
            prompts_config,
            timeout_sec=30,
            max_concurrent=max_concurrent,
            default_debate_rounds=2,
            max_debate_rounds=3,
        )

    return factory


@pytest.fixture
def mock_orchestrator() -> MagicMock:
    """Orchestrator double whose analyze() call count is the recompute counter."""
    orchestrator = MagicMock()
    orchestrator.analyze = AsyncMock(return_value=make_result("# Critique\n\nEverything is on fire."))
    orchestrator.runner.shutdown = AsyncMock()
    return orchestrator
