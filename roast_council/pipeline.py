"""Request pipeline: serve cached pages or run the orchestrator once and cache the report.

The composition root of the package. build_pipeline() wires the runner,
agent invocations, detection, orchestrator, cache and session tracking from
an AppConfig.
"""

import asyncio
import dataclasses
import logging
import os
import time
from collections.abc import Mapping
from dataclasses import dataclass

from config.config_loader import AppConfig
from roast_council.agents.base import SUBPROCESS_MARKER_ENV
from roast_council.agents.registry import build_invocations
from roast_council.cache import ANONYMOUS_SESSION, ResponseCache
from roast_council.chunker import CHUNK_OVERLAP_TOKENS
from roast_council.debate import run_debate
from roast_council.detection import AgentContext
from roast_council.errors import PayloadTooLargeError, RequestError, UnknownHandleError
from roast_council.models import AnalysisResult, CacheEntry, ConversationMessage, PaginationMetadata, PaginationRequest
from roast_council.orchestrator import AgentOrchestrator, RunOptions
from roast_council.pagination import extract_pagination, paginate
from roast_council.process import ProcessRunner
from roast_council.prompts import build_conversation_preamble
from roast_council.requests import CritiqueRequest
from roast_council.sessions import SessionTracker

logger = logging.getLogger(__name__)


@dataclass
class CritiqueResponse:
    success: bool
    content: str                          # the requested page
    pagination: PaginationMetadata
    context_id: str | None
    result: AnalysisResult | None = None  # set when agents ran for this request or one it joined
    cached: bool = False
    notice: str | None = None


@dataclass
class _Outcome:
    result: AnalysisResult
    content: str
    context_id: str | None
    notice: str | None


class CritiquePipeline:
    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        cache: ResponseCache,
        sessions: SessionTracker | None = None,
        overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
        cleanup_interval_sec: float = 300.0,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self.sessions = sessions
        self.overlap_tokens = overlap_tokens
        self.cleanup_interval_sec = cleanup_interval_sec
        self._environ = environ
        self._in_flight: dict[tuple[str, str], asyncio.Future[_Outcome]] = {}   # (key, owner) -> running analysis

    async def __aenter__(self) -> "CritiquePipeline":
        self.cache.start_cleanup(self.cleanup_interval_sec)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.cache.close()
        await self.orchestrator.runner.shutdown()

    async def handle(self, request: CritiqueRequest, options: RunOptions | None = None) -> CritiqueResponse:
        """Serve one request.

        Raises:
            RequestError: recursion from a spawned agent, or a malformed resume.
            UnknownHandleError: context_id does not resolve for this session.
            AgentUnavailableError: no agent can run the analysis.
            DebatePreconditionError: a debate with fewer than two agents.
        """
        self._guard_recursion()
        if self.sessions is not None:
            self.sessions.touch(request.session_id)
        page_request = extract_pagination(request.offset, request.limit, request.cursor)

        if request.resume and not request.context_id:
            raise RequestError(
                "The 'resume' flag requires a context_id from a previous response. "
                "Run an initial analysis first, then resume with the returned context_id."
            )

        resumed: CacheEntry | None = None
        if request.context_id and not request.force_refresh:
            entry = await self.cache.get_by_context_id(request.context_id, request.session_id)
            if entry is None:
                logger.warning("Unknown context id %s", request.context_id[:8])
                raise UnknownHandleError(request.context_id)
            if not request.resume:
                logger.info("Serving cached page for context id %s", request.context_id[:8])
                return self._serve(entry.content, page_request, request.context_id, cached=True)
            if not request.target.strip():
                raise RequestError("Conversation continuation (resume) requires a new prompt")
            resumed = entry

        key = self.cache.generate_cache_key(request.cache_params())
        if resumed is None and not request.force_refresh:
            content = await self.cache.get(key, request.session_id)
            if content is not None:
                existing = self.cache.find_context_id_for_key(key)
                try:
                    context_id = self.cache.create_alias(existing or key, key)
                except UnknownHandleError:
                    # Evicted between the read and the alias; run as a miss.
                    logger.info("Cache entry %s evicted while serving, recomputing", key[:8])
                else:
                    logger.info("Cache hit for new request, using context id %s", context_id[:8])
                    return self._serve(content, page_request, context_id, cached=True)

        if resumed is not None:
            outcome = await self._compute(request, key, resumed, options)
            return self._serve(
                outcome.content, page_request, outcome.context_id, result=outcome.result, notice=outcome.notice,
            )

        flight = (key, request.session_id or ANONYMOUS_SESSION)
        pending = self._in_flight.get(flight)
        if pending is not None:
            logger.info("Joining in-flight analysis %s", key[:8])
            return await self._join(pending, key, page_request)

        future: asyncio.Future[_Outcome] = asyncio.get_running_loop().create_future()
        self._in_flight[flight] = future
        try:
            outcome = await self._compute(request, key, None, options)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            future.exception()  # mark retrieved
            raise
        else:
            future.set_result(outcome)
        finally:
            del self._in_flight[flight]
        return self._serve(
            outcome.content, page_request, outcome.context_id, result=outcome.result, notice=outcome.notice,
        )

    async def _compute(
        self,
        request: CritiqueRequest,
        key: str,
        resumed: CacheEntry | None,
        options: RunOptions | None,
    ) -> _Outcome:
        result = await self._run(request, resumed, options or RunOptions())
        content = result.synthesis or ""
        if not result.success:
            return _Outcome(result, content, None, None)
        context_id, notice = await self._store(request, key, content, resumed)
        return _Outcome(result, content, context_id, notice)

    async def _join(
        self, pending: asyncio.Future[_Outcome], key: str, page_request: PaginationRequest,
    ) -> CritiqueResponse:
        """Wait for an identical running analysis and serve its report under a new handle."""
        outcome = await asyncio.shield(pending)
        context_id = None
        if outcome.context_id is not None:
            try:
                context_id = self.cache.create_alias(outcome.context_id, key)
            except UnknownHandleError:
                logger.info("Shared result %s already evicted, serving it uncached", key[:8])
        return self._serve(
            outcome.content, page_request, context_id, result=outcome.result, cached=True, notice=outcome.notice,
        )

    def _guard_recursion(self) -> None:
        environ = os.environ if self._environ is None else self._environ
        if environ.get(SUBPROCESS_MARKER_ENV):
            logger.warning("Refusing request from inside a spawned agent")
            raise RequestError("Refusing to run: this process was spawned by roast-council itself")

    async def _run(self, request: CritiqueRequest, resumed: CacheEntry | None, options: RunOptions) -> AnalysisResult:
        target = request.target
        context = request.context
        if resumed is not None:
            # A follow-up keeps the original target; the new prompt rides in the preamble.
            target = resumed.request_params.get("target") or request.target
            preamble = build_conversation_preamble(resumed.conversation_history or [], request.target)
            context = preamble + (request.context or resumed.request_params.get("context") or "")
            logger.info(
                "Resuming conversation %s with %d previous messages",
                request.context_id[:8], len(resumed.conversation_history or []),
            )

        run_options = dataclasses.replace(
            options,
            preferred=request.agents or None,
            models=request.models,
            working_directory=request.working_directory,
        )
        if request.debate:
            return await run_debate(self.orchestrator, target, request.rounds, context, run_options)
        return await self.orchestrator.analyze(request.domain, target, context, run_options)

    async def _store(
        self,
        request: CritiqueRequest,
        key: str,
        content: str,
        resumed: CacheEntry | None,
    ) -> tuple[str | None, str | None]:
        """Cache the report. Returns (context_id, notice); context_id is None if rejected."""
        now = time.time()
        history = list(resumed.conversation_history or []) if resumed else []
        conversation = history + [
            ConversationMessage(role="user", content=request.target, timestamp=now),
            ConversationMessage(role="assistant", content=content, timestamp=now),
        ]
        try:
            if resumed is not None:
                try:
                    await self.cache.update_by_context_id(
                        request.context_id, content, conversation, request.session_id,
                    )
                    return request.context_id, None
                except UnknownHandleError:
                    logger.warning("Context id %s expired during the run, caching as new", request.context_id[:8])
                    key = resumed.key
            _, context_id = await self.cache.set(
                request.cache_params() if resumed is None else resumed.request_params,
                content,
                key,
                request.session_id,
                conversation,
            )
            return context_id, None
        except PayloadTooLargeError as exc:
            logger.warning("Result not cached: %s", exc)
            return None, f"Result was not cached ({exc}). Paging with a context_id is unavailable."

    def _serve(
        self,
        content: str,
        page_request: PaginationRequest,
        context_id: str | None,
        result: AnalysisResult | None = None,
        cached: bool = False,
        notice: str | None = None,
    ) -> CritiqueResponse:
        page = paginate(content, page_request, self.overlap_tokens)
        return CritiqueResponse(
            success=result.success if result is not None else True,
            content=page.content,
            pagination=page.pagination,
            context_id=context_id,
            result=result,
            cached=cached,
            notice=notice,
        )


def build_pipeline(config: AppConfig, environ: Mapping[str, str] | None = None) -> CritiquePipeline:
    execution = config.execution
    runner = ProcessRunner(max_output_bytes=int(execution.max_output_mb * 1024 * 1024))
    invocations = build_invocations(config.agents)
    agent_context = AgentContext(runner, invocations, execution.probe_timeout_sec, environ=environ)
    orchestrator = AgentOrchestrator(
        runner,
        invocations,
        agent_context,
        config.prompts,
        timeout_sec=execution.timeout_sec,
        max_concurrent=execution.max_concurrent,
        default_debate_rounds=execution.default_debate_rounds,
        max_debate_rounds=execution.max_debate_rounds,
        working_directory=str(execution.working_directory) if execution.working_directory else None,
    )
    return CritiquePipeline(
        orchestrator,
        ResponseCache.from_config(config.cache),
        SessionTracker.from_config(config.sessions),
        cleanup_interval_sec=config.cache.cleanup_interval_sec,
        environ=environ,
    )
