"""Agent orchestration: bounded parallel dispatch of CLI agents and synthesis.

One AgentOrchestrator is shared by every request in the process. Its
semaphore is the single concurrency ceiling for agent subprocesses; agents
beyond the ceiling queue for a slot. Per-agent failures are folded into the
result and never raised.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from config.config_loader import PromptsConfig
from roast_council.agents.base import InvocationOptions, InvocationSet
from roast_council.detection import AgentContext
from roast_council.errors import AgentUnavailableError
from roast_council.models import AgentIdentity, AgentResponse, AnalysisResult
from roast_council.process import ProcessRunner
from roast_council.prompts import build_task_prompt, system_prompt_for
from roast_council.selection import select_agents
from roast_council.synthesis import build_execution_summary, synthesize_analysis

logger = logging.getLogger(__name__)


def _as_list(preferred: AgentIdentity | Sequence[AgentIdentity]) -> list[AgentIdentity]:
    return [preferred] if isinstance(preferred, AgentIdentity) else list(preferred)


class Phase(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    SELECTING = "selecting"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    SYNTHESIZING = "synthesizing"
    DONE = "done"


@dataclass
class RunOptions:
    preferred: AgentIdentity | Sequence[AgentIdentity] | None = None
    models: dict[AgentIdentity, str] = field(default_factory=dict)
    working_directory: str | None = None
    exclude_current: bool = True
    on_output: Callable[[AgentIdentity, str, str], None] | None = None
    on_phase: Callable[[Phase], None] | None = None


class AgentOrchestrator:
    def __init__(
        self,
        runner: ProcessRunner,
        invocations: InvocationSet,
        agent_context: AgentContext,
        prompts: PromptsConfig,
        timeout_sec: float,
        max_concurrent: int,
        default_debate_rounds: int = 2,
        max_debate_rounds: int = 3,
        working_directory: str | None = None,
    ) -> None:
        self.runner = runner
        self.invocations = invocations
        self.agent_context = agent_context
        self.prompts = prompts
        self.timeout_sec = timeout_sec
        self.max_concurrent = max_concurrent
        self.default_debate_rounds = default_debate_rounds
        self.max_debate_rounds = max_debate_rounds
        self.working_directory = working_directory
        self._slots = asyncio.Semaphore(max_concurrent)
        self._running = 0

    def enter_phase(self, options: RunOptions, phase: Phase) -> None:
        logger.debug("Orchestrator phase: %s", phase.value)
        if options.on_phase:
            options.on_phase(phase)

    async def run_agent(
        self,
        agent: AgentIdentity,
        task_prompt: str,
        system_prompt: str,
        options: RunOptions,
        round_number: int | None = None,
    ) -> AgentResponse:
        """Run one agent under the concurrency ceiling. Never raises for agent failures."""
        invocation = self.invocations[agent]
        spec = invocation.build(
            task_prompt,
            system_prompt,
            InvocationOptions(
                model=options.models.get(agent),
                working_directory=options.working_directory or self.working_directory,
            ),
        )
        on_output = None
        if options.on_output:
            on_output = lambda stream, line: options.on_output(agent, stream, line)  # noqa: E731

        start = time.monotonic()
        try:
            async with self._slots:
                self._running += 1
                logger.info(
                    "Executing %s (%d/%d slots used)", agent.value, self._running, self.max_concurrent,
                )
                logger.debug("%s prompt: %s", agent.value, task_prompt[:100])
                try:
                    result = await self.runner.run(
                        spec.command,
                        spec.args,
                        timeout_sec=self.timeout_sec,
                        cwd=spec.cwd,
                        env=spec.env,
                        stdin_payload=spec.stdin,
                        on_output=on_output,
                    )
                finally:
                    self._running -= 1
        except Exception as exc:
            logger.warning("%s unexpected failure: %s", agent.value, exc)
            return AgentResponse(
                agent=agent,
                success=False,
                output="",
                execution_time_ms=int((time.monotonic() - start) * 1000),
                error=f"Unexpected error: {exc}",
                command=spec.describe(),
                round_number=round_number,
            )

        if result.ok:
            logger.info("%s completed (%dms)", agent.value, result.duration_ms)
            return AgentResponse(
                agent=agent,
                success=True,
                output=result.stdout,
                execution_time_ms=result.duration_ms,
                exit_code=result.exit_code,
                command=spec.describe(),
                round_number=round_number,
            )

        logger.warning(
            "%s failed (%s, %dms, exit code %s)",
            agent.value, result.failure.value, result.duration_ms, result.exit_code,
        )
        logger.debug("%s stderr: %s", agent.value, result.stderr[-2000:])
        error = result.error or "unknown error"
        if result.stderr.strip():
            error = f"{error}\n{result.stderr.strip()[-500:]}"
        return AgentResponse(
            agent=agent,
            success=False,
            output=result.stdout,
            execution_time_ms=result.duration_ms,
            error=error,
            exit_code=result.exit_code,
            failure=result.failure,
            command=spec.describe(),
            round_number=round_number,
        )

    async def dispatch(
        self,
        calls: Sequence[tuple[AgentIdentity, str]],
        system_prompt: str,
        options: RunOptions,
        round_number: int | None = None,
    ) -> list[AgentResponse]:
        """Run (agent, task prompt) pairs concurrently; results keep dispatch order."""
        self.enter_phase(options, Phase.DISPATCHING)
        responses = await asyncio.gather(*(
            self.run_agent(agent, prompt, system_prompt, options, round_number)
            for agent, prompt in calls
        ))
        self.enter_phase(options, Phase.COLLECTING)
        return list(responses)

    async def analyze(
        self,
        kind: str,
        target: str,
        context: str | None = None,
        options: RunOptions | None = None,
    ) -> AnalysisResult:
        """Run every selected agent against one target and synthesize the outputs.

        Raises:
            AgentUnavailableError: no agent is installed.
        """
        options = options or RunOptions()
        self.enter_phase(options, Phase.DETECTING)
        cli_context = await self.agent_context.get()

        self.enter_phase(options, Phase.SELECTING)
        agents = select_agents(cli_context, options.preferred, options.exclude_current)
        if not agents:
            raise AgentUnavailableError("No CLI agents available for analysis")
        user_specified = options.preferred is not None and set(agents) <= set(_as_list(options.preferred))

        logger.info("Starting %s analysis with %s", kind, ", ".join(a.value for a in agents))
        system_prompt = system_prompt_for(self.prompts, kind)
        task_prompt = build_task_prompt(self.prompts, kind, target, context)
        responses = await self.dispatch([(a, task_prompt) for a in agents], system_prompt, options)

        succeeded = sum(1 for r in responses if r.success)
        logger.info("Analysis complete: %d/%d agents successful", succeeded, len(responses))

        self.enter_phase(options, Phase.SYNTHESIZING)
        synthesis = synthesize_analysis(responses, kind, target)
        summary = build_execution_summary(
            responses, "user-specified" if user_specified else "multi-agent"
        )
        self.enter_phase(options, Phase.DONE)
        return AnalysisResult(
            success=succeeded > 0,
            responses=responses,
            synthesis=synthesis,
            analysis_kind=kind,
            target=target,
            execution_summary=summary,
        )
