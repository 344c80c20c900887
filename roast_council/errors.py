"""Request-level failures. Per-agent failures are data, see AgentResponse.failure."""


class RoastError(Exception):
    """Base for every failure surfaced to the caller of the pipeline."""


class AgentUnavailableError(RoastError):
    """No installed agent can serve the request."""


class DebatePreconditionError(RoastError):
    """A debate needs at least two agents."""

    def __init__(self, available: list[str]) -> None:
        self.available = available
        names = ", ".join(available) if available else "none"
        super().__init__(
            f"Debate requires at least 2 agents, but only {len(available)} available: {names}"
        )


class UnknownHandleError(RoastError):
    """A caller-supplied context_id did not resolve."""

    def __init__(self, context_id: str) -> None:
        self.context_id = context_id
        super().__init__(
            f'Context ID "{context_id}" not found in cache. It may have expired '
            "or belong to a different session. Remove context_id to run a new analysis."
        )


class PayloadTooLargeError(RoastError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Response too large for cache: {size / (1024 * 1024):.2f}MB > "
            f"{limit / (1024 * 1024):.2f}MB"
        )


class RequestError(RoastError):
    """The request itself is malformed or not allowed in this process."""
