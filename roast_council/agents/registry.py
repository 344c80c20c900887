"""Maps each AgentIdentity to its invocation convention."""

import logging

from config.config_loader import AgentConfig
from roast_council.agents.base import Invocation, InvocationSet
from roast_council.agents.claude import ClaudeInvocation
from roast_council.agents.codex import CodexInvocation
from roast_council.agents.gemini import GeminiInvocation
from roast_council.models import AgentIdentity

logger = logging.getLogger(__name__)

INVOCATION_CLASSES: dict[AgentIdentity, type[Invocation]] = {
    AgentIdentity.CLAUDE: ClaudeInvocation,
    AgentIdentity.CODEX: CodexInvocation,
    AgentIdentity.GEMINI: GeminiInvocation,
}


def build_invocations(agent_configs: dict[str, AgentConfig] | None = None) -> InvocationSet:
    """Build one invocation per known agent, applying configured binaries and models."""
    agent_configs = agent_configs or {}
    for name in agent_configs:
        if name not in {a.value for a in AgentIdentity}:
            logger.warning("Agent '%s' in config is unknown, skipping", name)

    invocations: dict[AgentIdentity, Invocation] = {}
    for identity, cls in INVOCATION_CLASSES.items():
        cfg = agent_configs.get(identity.value)
        if cfg is None:
            invocations[identity] = cls()
        else:
            invocations[identity] = cls(binary=cfg.binary, default_model=cfg.default_model)
    return InvocationSet(invocations)
