"""Abstract base for all CLI agent invocation conventions."""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from roast_council.models import AgentIdentity

# Set in every spawned agent's environment; the pipeline refuses to run under it.
SUBPROCESS_MARKER_ENV = "ROAST_COUNCIL_SUBPROCESS"

_DESCRIBE_MAX_ARG = 40


@dataclass
class InvocationOptions:
    model: str | None = None
    working_directory: str | None = None


@dataclass
class InvocationSpec:
    command: str
    args: list[str]
    env: dict[str, str]
    stdin: str | None = None
    cwd: str | None = None

    def describe(self) -> str:
        """Command line for diagnostics, with prompt-sized arguments elided."""
        shown = [a if len(a) <= _DESCRIBE_MAX_ARG else f"<{len(a)} chars>" for a in self.args]
        return " ".join([self.command, *shown])


def argv_safe(text: str) -> str:
    """Make free text safe to pass as a single argv element.

    NUL cannot be carried in argv at all, and a leading dash would be parsed
    as an option by the receiving CLI.
    """
    cleaned = text.replace("\x00", "")
    if cleaned.startswith("-"):
        cleaned = " " + cleaned
    return cleaned


class Invocation(ABC):
    """One external agent's CLI contract.

    Implementations must never request write or execute capability from the
    tool they drive.
    """

    identity: AgentIdentity

    def __init__(self, binary: str | None = None, default_model: str | None = None) -> None:
        self.binary = binary or self.identity.value
        self.default_model = default_model

    @abstractmethod
    def build(self, task_prompt: str, system_prompt: str, options: InvocationOptions) -> InvocationSpec:
        """Turn prompts and options into the exact argv/env/stdin for this agent."""
        ...

    def version_args(self) -> list[str]:
        return ["--version"]

    def _model(self, options: InvocationOptions) -> str | None:
        return options.model or self.default_model

    @staticmethod
    def _base_env(extra: dict[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ)
        env[SUBPROCESS_MARKER_ENV] = "1"
        if extra:
            env.update(extra)
        return env


@dataclass
class InvocationSet:
    """The invocations available to an orchestrator, keyed by identity."""

    invocations: dict[AgentIdentity, Invocation] = field(default_factory=dict)

    def __getitem__(self, identity: AgentIdentity) -> Invocation:
        return self.invocations[identity]

    def __iter__(self):
        return iter(self.invocations.values())

    def __len__(self) -> int:
        return len(self.invocations)
