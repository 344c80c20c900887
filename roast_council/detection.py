"""Agent detection: probe installed CLIs and guess which one is hosting us."""

import asyncio
import logging
import os
from collections.abc import Mapping

from roast_council.agents.base import InvocationSet
from roast_council.models import AgentIdentity, CLIContext
from roast_council.process import ProcessRunner

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT_SEC = 5.0

# Environment variables an agent sets for the processes it launches.
_HOST_SIGNALS: dict[AgentIdentity, tuple[str, ...]] = {
    AgentIdentity.CLAUDE: ("CLAUDECODE", "CLAUDE_CODE_ENTRYPOINT", "CLAUDE_CODE_SESSION"),
    AgentIdentity.CODEX: ("CODEX_SANDBOX", "CODEX_SESSION", "OPENAI_CODEX_SESSION"),
    AgentIdentity.GEMINI: ("GEMINI_CLI", "GEMINI_SESSION"),
}


def detect_current_agent(environ: Mapping[str, str] | None = None) -> AgentIdentity | None:
    """Best-effort guess at the agent running this process.

    Returns None whenever the evidence is missing or points at more than one
    agent; never raises.
    """
    environ = os.environ if environ is None else environ
    try:
        matches = {
            identity
            for identity, names in _HOST_SIGNALS.items()
            if any(environ.get(name) for name in names)
        }
        if len(matches) == 1:
            return matches.pop()
        if len(matches) > 1:
            logger.debug("Conflicting host signals %s, treating host as unknown", sorted(m.value for m in matches))
            return None

        # The shell records the launching binary in "_".
        launcher = os.path.basename(environ.get("_", "")).lower()
        by_launcher = {identity for identity in AgentIdentity if identity.value in launcher}
        if len(by_launcher) == 1:
            return by_launcher.pop()
    except Exception as exc:
        logger.debug("Could not infer host agent: %s", exc)
    return None


async def _probe_one(
    runner: ProcessRunner,
    identity: AgentIdentity,
    command: str,
    args: list[str],
    timeout_sec: float,
) -> tuple[AgentIdentity, bool, str]:
    """Run '<binary> --version'. Returns (identity, ok, error_message)."""
    result = await runner.run(command, args, timeout_sec=timeout_sec)
    if result.ok:
        logger.debug("Agent available: %s (%s)", identity.value, result.stdout.strip()[:60])
        return identity, True, ""
    logger.debug("Agent not available: %s (%s)", identity.value, result.error)
    return identity, False, result.error or "unknown error"


async def probe_agents(
    runner: ProcessRunner,
    invocations: InvocationSet,
    timeout_sec: float = _PROBE_TIMEOUT_SEC,
) -> dict[AgentIdentity, tuple[bool, str]]:
    """Probe all agents in parallel.

    Returns:
        Dict mapping identity -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(
        _probe_one(runner, inv.identity, inv.binary, inv.version_args(), timeout_sec)
        for inv in invocations
    ))
    return {identity: (ok, err) for identity, ok, err in results}


class AgentContext:
    """Holds the detected CLIContext for the life of the process.

    Detection runs lazily on first use and again only on refresh().
    """

    def __init__(
        self,
        runner: ProcessRunner | None,
        invocations: InvocationSet | None,
        probe_timeout_sec: float = _PROBE_TIMEOUT_SEC,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._invocations = invocations
        self._probe_timeout_sec = probe_timeout_sec
        self._environ = environ
        self._context: CLIContext | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def fixed(cls, context: CLIContext) -> "AgentContext":
        """A context that never probes; refresh() keeps the given value."""
        holder = cls(runner=None, invocations=None)
        holder._context = context
        return holder

    async def get(self) -> CLIContext:
        if self._context is not None:
            return self._context
        async with self._lock:
            if self._context is None:
                self._context = await self._detect()
        return self._context

    async def refresh(self) -> CLIContext:
        async with self._lock:
            self._context = await self._detect()
        return self._context

    async def _detect(self) -> CLIContext:
        if self._runner is None or self._invocations is None:
            return self._context or CLIContext()

        results = await probe_agents(self._runner, self._invocations, self._probe_timeout_sec)
        available = {identity for identity, (ok, _) in results.items() if ok}
        current = detect_current_agent(self._environ)
        logger.info(
            "Detected agents: %s (host: %s)",
            ", ".join(sorted(a.value for a in available)) or "none",
            current.value if current else "unknown",
        )
        return CLIContext(available_agents=available, current_agent=current)
