"""Pure dataclasses for the critique pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class AgentIdentity(str, Enum):
    """The closed set of external CLI agents we know how to drive."""

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    AgentIdentity.CLAUDE: "Claude Code",
    AgentIdentity.CODEX: "Codex",
    AgentIdentity.GEMINI: "Gemini CLI",
}


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"      # binary missing, spawn failed
    TIMEOUT = "timeout"          # deadline exceeded, process terminated
    EXIT_ERROR = "exit_error"    # non-zero exit


class Stance(str, Enum):
    ADVOCATE = "advocate"
    OPPONENT = "opponent"


@dataclass
class CLIContext:
    available_agents: set[AgentIdentity] = field(default_factory=set)
    current_agent: AgentIdentity | None = None


@dataclass(frozen=True)
class AgentResponse:
    agent: AgentIdentity
    success: bool
    output: str
    execution_time_ms: int
    error: str | None = None
    exit_code: int | None = None
    failure: FailureKind | None = None
    command: str = ""            # diagnostic descriptor, never the prompt body
    round_number: int | None = None


@dataclass
class ExecutionSummary:
    total_agents: int
    successful_agents: int
    failed_agents: int
    total_execution_ms: int
    selected_agent: AgentIdentity | None = None
    selection_method: str = "multi-agent"   # "user-specified", "multi-agent", "debate"


@dataclass
class AnalysisResult:
    success: bool
    responses: list[AgentResponse]
    synthesis: str | None
    analysis_kind: str
    target: str
    execution_summary: ExecutionSummary
    debate_state: "DebateState | None" = None


@dataclass
class ConversationMessage:
    role: str                    # "user" or "assistant"
    content: str
    timestamp: float


@dataclass
class CacheEntry:
    key: str
    context_id: str
    content: str | bytes         # bytes when compressed
    compressed: bool
    size: int
    session_id: str
    created_at: float
    last_accessed_at: float
    request_params: dict = field(default_factory=dict)
    conversation_history: list[ConversationMessage] | None = None


@dataclass
class CacheStats:
    entries: int = 0
    total_size: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0


@dataclass
class Chunk:
    content: str
    start_offset: int
    end_offset: int
    original_length: int
    is_complete: bool


@dataclass
class PaginationRequest:
    offset: int
    limit: int
    cursor: str | None = None


@dataclass
class PaginationMetadata:
    total: int
    offset: int
    limit: int
    has_more: bool
    chunk_index: int             # 1-based for display
    total_chunks: int
    next_cursor: str | None = None


@dataclass
class DebateState:
    topic: str
    positions: dict[AgentIdentity, Stance]
    transcript: dict[AgentIdentity, list[str]] = field(default_factory=dict)
    round: int = 0
