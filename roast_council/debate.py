"""Debate orchestration: stance assignment, opening statements, rebuttal rounds."""

import logging
from collections.abc import Callable

from roast_council.models import AgentIdentity, AgentResponse, AnalysisResult, DebateState
from roast_council.orchestrator import AgentOrchestrator, Phase, RunOptions
from roast_council.prompts import (
    NO_POSITION,
    build_opening_prompt,
    build_rebuttal_prompt,
    system_prompt_for,
)
from roast_council.selection import assign_debate_positions, select_agents
from roast_council.synthesis import build_execution_summary, synthesize_debate

logger = logging.getLogger(__name__)


def clamp_rounds(requested: int | None, default: int, maximum: int) -> int:
    rounds = default if requested is None else requested
    return max(1, min(rounds, maximum))


def _opponent_statements(state: DebateState, agent: AgentIdentity) -> list[tuple[AgentIdentity, str]]:
    """Latest transcript entry of every agent holding the other stance."""
    own = state.positions[agent]
    return [
        (other, state.transcript[other][-1])
        for other, stance in state.positions.items()
        if stance != own and state.transcript.get(other)
    ]


def _record_turns(state: DebateState, responses: list[AgentResponse]) -> None:
    for resp in responses:
        statement = resp.output.strip() if resp.success else ""
        state.transcript[resp.agent].append(statement or NO_POSITION)


async def run_debate(
    orchestrator: AgentOrchestrator,
    topic: str,
    rounds: int | None = None,
    context: str | None = None,
    options: RunOptions | None = None,
    on_round_complete: Callable[[int, list[AgentResponse]], None] | None = None,
) -> AnalysisResult:
    """Run the full debate across all rounds.

    A failed turn is recorded as "No position stated." and the debate carries
    on; only the precondition below aborts it.

    Raises:
        DebatePreconditionError: fewer than two agents available. Raised before
            any agent process is spawned.
    """
    options = options or RunOptions()
    num_rounds = clamp_rounds(rounds, orchestrator.default_debate_rounds, orchestrator.max_debate_rounds)
    if rounds is not None and rounds != num_rounds:
        logger.warning("Debate rounds %d clamped to %d", rounds, num_rounds)

    orchestrator.enter_phase(options, Phase.DETECTING)
    cli_context = await orchestrator.agent_context.get()

    orchestrator.enter_phase(options, Phase.SELECTING)
    agents = select_agents(cli_context, options.preferred, options.exclude_current)
    positions = assign_debate_positions(agents)

    state = DebateState(topic=topic, positions=positions, transcript={a: [] for a in agents})
    system_prompt = system_prompt_for(orchestrator.prompts, "debate")
    all_responses: list[AgentResponse] = []

    for round_num in range(1, num_rounds + 1):
        state.round = round_num
        if round_num == 1:
            calls = [
                (a, build_opening_prompt(orchestrator.prompts, topic, positions[a], context))
                for a in agents
            ]
        else:
            calls = [
                (a, build_rebuttal_prompt(
                    orchestrator.prompts, topic, positions[a], round_num, _opponent_statements(state, a),
                ))
                for a in agents
            ]

        logger.info("Starting debate round %d with %d agents", round_num, len(agents))
        responses = await orchestrator.dispatch(calls, system_prompt, options, round_number=round_num)
        _record_turns(state, responses)
        all_responses.extend(responses)

        logger.info(
            "Round %d complete: %d/%d agents stated a position",
            round_num,
            sum(1 for r in responses if r.success),
            len(responses),
        )
        if on_round_complete:
            on_round_complete(round_num, responses)

    orchestrator.enter_phase(options, Phase.SYNTHESIZING)
    synthesis = synthesize_debate(state, all_responses)
    orchestrator.enter_phase(options, Phase.DONE)
    return AnalysisResult(
        success=any(r.success for r in all_responses),
        responses=all_responses,
        synthesis=synthesis,
        analysis_kind="debate",
        target=topic,
        execution_summary=build_execution_summary(all_responses, "debate"),
        debate_state=state,
    )
