"""Critique requests and markdown request files with YAML frontmatter."""

from dataclasses import dataclass, field
from pathlib import Path

import frontmatter
import yaml

from roast_council.errors import RequestError
from roast_council.models import AgentIdentity

DEFAULT_DOMAIN = "code"

# Frontmatter keys a request file may set.
_FILE_KEYS = ("domain", "agent", "debate", "rounds", "context", "workdir")


def parse_agent(name: str) -> AgentIdentity:
    try:
        return AgentIdentity(name.strip().lower())
    except ValueError:
        known = ", ".join(a.value for a in AgentIdentity)
        raise RequestError(f"Unknown agent '{name}'. Known agents: {known}") from None


def parse_model_overrides(pairs: list[str] | tuple[str, ...]) -> dict[AgentIdentity, str]:
    """Parse 'agent=model' strings into a per-agent model map."""
    models: dict[AgentIdentity, str] = {}
    for pair in pairs:
        name, sep, model = pair.partition("=")
        if not sep or not model.strip():
            raise RequestError(f"Model override must look like agent=model, got '{pair}'")
        models[parse_agent(name)] = model.strip()
    return models


@dataclass
class CritiqueRequest:
    target: str
    domain: str = DEFAULT_DOMAIN
    context: str | None = None
    agents: list[AgentIdentity] | None = None
    models: dict[AgentIdentity, str] = field(default_factory=dict)
    working_directory: str | None = None
    debate: bool = False
    rounds: int | None = None
    offset: int | None = None
    limit: int | None = None
    cursor: str | None = None
    context_id: str | None = None
    resume: bool = False
    force_refresh: bool = False
    session_id: str | None = None

    def cache_params(self) -> dict:
        """Fields that identify the analysis. Pagination and handles are left out."""
        return {
            "tool": "debate" if self.debate else "roast",
            "domain": None if self.debate else self.domain,
            "target": self.target,
            "context": self.context,
            "agents": sorted(a.value for a in self.agents) if self.agents else None,
            "models": {a.value: m for a, m in self.models.items()} or None,
            "working_directory": self.working_directory,
            "rounds": self.rounds if self.debate else None,
        }


def parse_request_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown request file with optional YAML frontmatter.

    Returns:
        (target, metadata) where target is the body text and metadata holds
        only the recognised keys: domain, agent, debate, rounds, context, workdir.
        If no frontmatter, metadata is {}.

    Raises:
        RequestError: the front matter is not valid YAML.
    """
    try:
        post = frontmatter.load(str(file_path))
    except yaml.YAMLError as exc:
        raise RequestError(f"Invalid front matter in {file_path}: {exc}") from exc
    target = post.content.strip()
    metadata = {k: v for k, v in post.metadata.items() if k in _FILE_KEYS}
    return target, metadata
