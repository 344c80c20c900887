"""Participant selection for analyses and debates."""

import logging
from collections.abc import Iterable, Sequence

from roast_council.errors import DebatePreconditionError
from roast_council.models import AgentIdentity, CLIContext, Stance

logger = logging.getLogger(__name__)

_STANCE_CYCLE = (Stance.ADVOCATE, Stance.OPPONENT)


def _ordered(agents: Iterable[AgentIdentity]) -> list[AgentIdentity]:
    """Stable declaration order, so dispatch order never depends on set iteration."""
    wanted = set(agents)
    return [a for a in AgentIdentity if a in wanted]


def select_agents(
    context: CLIContext,
    preferred: AgentIdentity | Sequence[AgentIdentity] | None = None,
    exclude_current: bool = True,
) -> list[AgentIdentity]:
    """Choose which agents run a request.

    An available preferred agent (or list of agents) wins outright, even if it
    is the host. Otherwise every available agent except the host runs, unless
    that would leave nobody. Returns [] when nothing is installed.
    """
    available = _ordered(context.available_agents)

    if preferred is not None:
        wanted = [preferred] if isinstance(preferred, AgentIdentity) else list(preferred)
        chosen = [a for a in dict.fromkeys(wanted) if a in context.available_agents]
        if chosen:
            logger.info("Using preferred agent(s): %s", ", ".join(a.value for a in chosen))
            return chosen
        logger.warning(
            "Preferred agent(s) %s not available, falling back to automatic selection",
            ", ".join(a.value for a in wanted),
        )

    current = context.current_agent
    if exclude_current and current is not None:
        candidates = [a for a in available if a != current]
        if candidates:
            logger.info("Excluding host agent (%s) from selection", current.value)
            return candidates
        if available:
            logger.warning("Only the host agent (%s) is available, allowing it", current.value)

    return available


def assign_debate_positions(agents: Sequence[AgentIdentity]) -> dict[AgentIdentity, Stance]:
    """Alternate stances across agents in order: advocate, opponent, advocate, ...

    Raises:
        DebatePreconditionError: fewer than two agents.
    """
    if len(agents) < 2:
        raise DebatePreconditionError([a.value for a in agents])
    return {agent: _STANCE_CYCLE[i % len(_STANCE_CYCLE)] for i, agent in enumerate(agents)}
