"""Compose agent outputs into one report, with a short meta-summary."""

import logging

from roast_council.models import AgentResponse, DebateState, ExecutionSummary

logger = logging.getLogger(__name__)


def build_execution_summary(responses: list[AgentResponse], selection_method: str) -> ExecutionSummary:
    successful = sum(1 for r in responses if r.success)
    agents = {r.agent for r in responses}
    return ExecutionSummary(
        total_agents=len(responses),
        successful_agents=successful,
        failed_agents=len(responses) - successful,
        total_execution_ms=sum(r.execution_time_ms for r in responses),
        selected_agent=next(iter(agents)) if len(agents) == 1 else None,
        selection_method=selection_method,
    )


def _failure_line(response: AgentResponse) -> str:
    kind = response.failure.value if response.failure else "error"
    return f"- **{response.agent.label}** ({kind}): {response.error or 'no output'}"


def _failed_report(title: str, responses: list[AgentResponse]) -> str:
    lines = [f"# {title}", "", f"All {len(responses)} agent call(s) failed:"]
    lines += [_failure_line(r) for r in responses]
    return "\n".join(lines)


def synthesize_analysis(responses: list[AgentResponse], kind: str, target: str) -> str:
    """Labeled concatenation of successful outputs plus failures by name."""
    successful = [r for r in responses if r.success]
    failed = [r for r in responses if not r.success]

    if not successful:
        logger.warning("All %d agents failed for %s analysis", len(responses), kind)
        return _failed_report("Analysis Failed", responses)

    total_ms = sum(r.execution_time_ms for r in responses)
    parts: list[str] = [
        f"# Critique ({kind}): {target[:80]}",
        "",
        f"{len(successful)} of {len(responses)} critics responded ({total_ms}ms total agent time).",
        "",
    ]
    for index, resp in enumerate(successful, start=1):
        parts.append(f"## Critic {index}: {resp.agent.label}")
        parts.append(f"*Execution time: {resp.execution_time_ms}ms*")
        parts.append("")
        parts.append(resp.output.strip())
        parts.append("")
        parts.append("---")
        parts.append("")

    if failed:
        parts.append("## Failed Critics")
        parts.append(f"{len(failed)} critic(s) failed to complete:")
        parts += [_failure_line(r) for r in failed]

    return "\n".join(parts).strip()


def synthesize_debate(state: DebateState, responses: list[AgentResponse]) -> str:
    """Round-by-round transcript, labeled by agent and stance."""
    if not any(r.success for r in responses):
        logger.warning("Every debate turn failed for topic %r", state.topic[:60])
        return _failed_report("Debate Failed", responses)

    participants = list(state.positions)
    parts: list[str] = [
        f"# Debate: {state.topic[:80]}",
        "",
        f"**Rounds:** {state.round}",
        "**Participants:** " + ", ".join(
            f"{agent.label} ({state.positions[agent].value})" for agent in participants
        ),
        "",
    ]

    by_turn = {(r.agent, r.round_number): r for r in responses}
    for round_number in range(1, state.round + 1):
        heading = "Opening Statements" if round_number == 1 else "Rebuttals"
        parts.append(f"## Round {round_number}: {heading}")
        parts.append("")
        for agent in participants:
            entries = state.transcript.get(agent, [])
            statement = entries[round_number - 1] if round_number <= len(entries) else ""
            resp = by_turn.get((agent, round_number))
            timing = f" ({resp.execution_time_ms}ms)" if resp is not None else ""
            parts.append(f"### {agent.label}, {state.positions[agent].value}{timing}")
            parts.append(statement.strip())
            parts.append("")
        parts.append("---")
        parts.append("")

    failed = [r for r in responses if not r.success]
    successful = len(responses) - len(failed)
    parts.append("## Summary")
    parts.append(
        f"{successful} of {len(responses)} debate turns completed across "
        f"{state.round} round(s) between {len(participants)} agents."
    )
    if failed:
        parts.append("")
        parts.append("Failed turns:")
        parts += [
            f"- Round {r.round_number}: **{r.agent.label}** "
            f"({r.failure.value if r.failure else 'error'}): {r.error or 'no output'}"
            for r in failed
        ]
    return "\n".join(parts).strip()
