"""Load settings.yaml into typed dataclasses, then apply environment overrides."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


class ConfigError(ValueError):
    """Raised when settings.yaml or an environment override is invalid."""


@dataclass
class CacheConfig:
    ttl_hours: float = 2.0
    max_entries: int = 50
    max_total_size_mb: float = 500.0
    max_entry_size_mb: float = 10.0
    compression_threshold_mb: float = 1.0
    cleanup_interval_sec: float = 300.0


@dataclass
class ExecutionConfig:
    timeout_sec: float = 1500.0
    max_concurrent: int = 2
    probe_timeout_sec: float = 5.0
    max_output_mb: float = 10.0
    default_debate_rounds: int = 2
    max_debate_rounds: int = 3
    working_directory: Path | None = None


@dataclass
class SessionConfig:
    max_sessions: int = 100
    idle_timeout_min: float = 60.0


@dataclass
class AgentConfig:
    name: str
    binary: str
    default_model: str | None = None


@dataclass
class PromptsConfig:
    system: dict[str, str] = field(default_factory=dict)
    tasks: dict[str, str] = field(default_factory=dict)
    debate_opening: str = ""
    debate_rebuttal: str = ""
    stances: dict[str, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    cache: CacheConfig
    execution: ExecutionConfig
    sessions: SessionConfig
    agents: dict[str, AgentConfig]
    prompts: PromptsConfig


# env var -> (section attribute, field name, parser)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "ROAST_CACHE_TTL_HOURS": ("cache", "ttl_hours", float),
    "ROAST_CACHE_MAX_ENTRIES": ("cache", "max_entries", int),
    "ROAST_CACHE_MAX_TOTAL_MB": ("cache", "max_total_size_mb", float),
    "ROAST_CACHE_MAX_ENTRY_MB": ("cache", "max_entry_size_mb", float),
    "ROAST_CACHE_COMPRESSION_MB": ("cache", "compression_threshold_mb", float),
    "ROAST_TIMEOUT_SEC": ("execution", "timeout_sec", float),
    "ROAST_MAX_OUTPUT_MB": ("execution", "max_output_mb", float),
    "ROAST_MAX_CONCURRENT": ("execution", "max_concurrent", int),
    "ROAST_MAX_DEBATE_ROUNDS": ("execution", "max_debate_rounds", int),
    "ROAST_WORKING_DIRECTORY": ("execution", "working_directory", Path),
}


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _coerce(cls, values: dict, types: dict[str, type], section: str):
    kwargs = {}
    for key, value in values.items():
        if key not in types:
            logger.warning("Unknown setting %s.%s ignored", section, key)
            continue
        try:
            kwargs[key] = None if value is None else types[key](value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {section}.{key}: {value!r}") from exc
    return cls(**kwargs)


def _apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> None:
    for env_name, (section, attr, parser) in _ENV_OVERRIDES.items():
        raw_value = environ.get(env_name, "").strip()
        if not raw_value:
            continue
        try:
            value = parser(raw_value)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {env_name}: {raw_value!r}") from exc
        setattr(getattr(config, section), attr, value)
        logger.info("Setting %s.%s overridden from %s", section, attr, env_name)


def _validate(config: AppConfig) -> None:
    if config.execution.max_concurrent < 1:
        raise ConfigError("execution.max_concurrent must be at least 1")
    if config.execution.max_debate_rounds < 1:
        raise ConfigError("execution.max_debate_rounds must be at least 1")
    if config.cache.max_entries < 1:
        raise ConfigError("cache.max_entries must be at least 1")
    if config.execution.max_output_mb <= 0:
        raise ConfigError("execution.max_output_mb must be positive")
    cache = config.cache
    if not cache.compression_threshold_mb <= cache.max_entry_size_mb <= cache.max_total_size_mb:
        raise ConfigError(
            "cache sizes must satisfy compression_threshold_mb <= max_entry_size_mb <= max_total_size_mb"
        )


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if the settings file is missing and ConfigError
    for malformed values. Environment overrides (ROAST_*) win over the file.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    cache = _coerce(CacheConfig, _section(raw, "cache"), {
        "ttl_hours": float,
        "max_entries": int,
        "max_total_size_mb": float,
        "max_entry_size_mb": float,
        "compression_threshold_mb": float,
        "cleanup_interval_sec": float,
    }, "cache")
    execution = _coerce(ExecutionConfig, _section(raw, "execution"), {
        "timeout_sec": float,
        "max_concurrent": int,
        "probe_timeout_sec": float,
        "max_output_mb": float,
        "default_debate_rounds": int,
        "max_debate_rounds": int,
        "working_directory": Path,
    }, "execution")
    sessions = _coerce(SessionConfig, _section(raw, "sessions"), {
        "max_sessions": int,
        "idle_timeout_min": float,
    }, "sessions")

    agents: dict[str, AgentConfig] = {}
    for agent_name, agent_raw in _section(raw, "agents").items():
        agent_raw = agent_raw or {}
        agents[agent_name] = AgentConfig(
            name=agent_name,
            binary=str(agent_raw.get("binary", agent_name)),
            default_model=agent_raw.get("default_model"),
        )

    prompts_raw = _section(raw, "prompts")
    prompts = PromptsConfig(
        system={k: str(v) for k, v in (prompts_raw.get("system") or {}).items()},
        tasks={k: str(v) for k, v in (prompts_raw.get("tasks") or {}).items()},
        debate_opening=str(prompts_raw.get("debate_opening", "")),
        debate_rebuttal=str(prompts_raw.get("debate_rebuttal", "")),
        stances={k: str(v) for k, v in (prompts_raw.get("stances") or {}).items()},
    )

    config = AppConfig(
        cache=cache,
        execution=execution,
        sessions=sessions,
        agents=agents,
        prompts=prompts,
    )
    _apply_env_overrides(config, os.environ if environ is None else environ)
    _validate(config)
    return config
