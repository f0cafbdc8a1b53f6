"""
Streaming search orchestrator.

Runs one search as a staged pipeline and produces typed StageEvents:

    analyzing -> searching -> processing* -> matching -> completed | error

(the contact search uses `verifying` in place of processing/matching).
Exactly one terminal event is produced per search, and `sse_stream` always
ends the wire stream with the `[DONE]` sentinel.
"""
import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from config.logging_config import logger
from config.settings import CONTACT_MIN_TERM_LENGTH, HEARTBEAT_MIN_INTERVAL, SEARCH_PAGE_SIZE
from db.schemas.user import ViewerContext
from llm.query_oracle import QueryUnderstandingOracle
from search.access_policy import AccessPolicy, AccessTier
from search.exceptions import InvalidQueryError, SearchError
from search.models import (SearchCriteria, SearchDirective, SearchLogEntry, SearchResultPayload,
                           SearchStatus, StageEvent, Viewer)
from search.resource_store import ResourceStore
from utils.timing import Timer

SSE_DONE = "data: [DONE]\n\n"

GENERIC_ERROR_MESSAGE = SearchError.user_message
CONTACT_ERROR_MESSAGE = "An error occurred during the search"
FALLBACK_GUIDANCE = ("We couldn't analyze your question in detail right now, "
                     "so here are the resources that best match your words.")

CAREER_MESSAGES = {
    SearchStatus.ANALYZING: "Understanding your question...",
    SearchStatus.SEARCHING: "Finding relevant resources...",
    SearchStatus.PROCESSING: "Analyzing your question with AI...",
    SearchStatus.MATCHING: "Finding matching resources...",
}
HEARTBEAT_MESSAGE = "Processing AI analysis..."

CONTACT_MESSAGES = {
    SearchStatus.ANALYZING: "Analyzing your contact search query...",
    SearchStatus.SEARCHING: "Searching contact database...",
    SearchStatus.VERIFYING: "Verifying contact information...",
}

# Allowed successor stages; terminal stages have none.
_CAREER_FLOW = {
    None: {SearchStatus.ANALYZING},
    SearchStatus.ANALYZING: {SearchStatus.SEARCHING},
    SearchStatus.SEARCHING: {SearchStatus.PROCESSING},
    SearchStatus.PROCESSING: {SearchStatus.PROCESSING, SearchStatus.MATCHING},
    SearchStatus.MATCHING: {SearchStatus.COMPLETED},
}
_CONTACT_FLOW = {
    None: {SearchStatus.ANALYZING},
    SearchStatus.ANALYZING: {SearchStatus.SEARCHING},
    SearchStatus.SEARCHING: {SearchStatus.VERIFYING},
    SearchStatus.VERIFYING: {SearchStatus.COMPLETED},
}

ContextLoader = Callable[[str], Awaitable[Optional[ViewerContext]]]
SearchLogger = Callable[[SearchLogEntry], Awaitable[None]]


def validate_query(query: Optional[str]) -> str:
    """Return the trimmed query, or raise InvalidQueryError before any stream opens."""
    if query is None or not isinstance(query, str) or not query.strip():
        raise InvalidQueryError("Query is required")
    return query.strip()


def encode_sse(event: StageEvent) -> str:
    return f"data: {json.dumps(event.to_wire())}\n\n"


@dataclass
class SearchSession:
    """Transient state of one streamed search, owned by a single pipeline run."""
    query: str
    viewer: Viewer
    search_type: str = "career"
    stage: Optional[SearchStatus] = None
    llm_buffer: List[str] = field(default_factory=list)
    events: List[StageEvent] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
    directive: Optional[SearchDirective] = None
    results_count: int = 0
    used_fallback: bool = False

    @property
    def flow(self) -> Dict:
        return _CONTACT_FLOW if self.search_type == "contact" else _CAREER_FLOW

    @property
    def finished(self) -> bool:
        return self.stage is not None and self.stage.is_terminal

    def record(self, event: StageEvent) -> StageEvent:
        if self.finished:
            raise RuntimeError(f"Search already ended with '{self.stage.value}'")
        if event.status != SearchStatus.ERROR and event.status not in self.flow.get(self.stage, set()):
            raise RuntimeError(f"Illegal stage transition {self.stage} -> {event.status.value}")
        self.stage = event.status
        self.events.append(event)
        return event


class SearchOrchestrator:
    """
    Coordinates the query oracle, the resource stores and the access policy.

    Store failures and unexpected exceptions end the search with a single
    generic `error` event (details are only logged). Oracle failures are
    absorbed by the oracle's fallback directive.
    """

    def __init__(self, oracle: QueryUnderstandingOracle, store: ResourceStore, policy: AccessPolicy,
                 contact_store: Optional[ResourceStore] = None,
                 context_loader: Optional[ContextLoader] = None,
                 search_logger: Optional[SearchLogger] = None,
                 heartbeat_interval: float = HEARTBEAT_MIN_INTERVAL,
                 page_size: int = SEARCH_PAGE_SIZE):
        self.oracle = oracle
        self.store = store
        self.policy = policy
        self.contact_store = contact_store
        self.context_loader = context_loader
        self.search_logger = search_logger
        self.heartbeat_interval = heartbeat_interval
        self.page_size = page_size
        self._background_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def career_search(self, query: str, viewer: Viewer) -> AsyncIterator[StageEvent]:
        session = SearchSession(query=validate_query(query), viewer=viewer, search_type="career")
        return self._guarded(session, self._career_pipeline(session), GENERIC_ERROR_MESSAGE)

    def contact_search(self, query: str, viewer: Viewer) -> AsyncIterator[StageEvent]:
        if self.contact_store is None:
            raise RuntimeError("Contact search is not configured")
        session = SearchSession(query=validate_query(query), viewer=viewer, search_type="contact")
        return self._guarded(session, self._contact_pipeline(session), CONTACT_ERROR_MESSAGE)

    @staticmethod
    async def sse_stream(events: AsyncIterator[StageEvent]) -> AsyncIterator[str]:
        """Frame events as `data: <json>` records and finish with the [DONE] sentinel."""
        async for event in events:
            yield encode_sse(event)
        yield SSE_DONE

    async def drain_background_tasks(self):
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def _guarded(self, session: SearchSession, pipeline: AsyncIterator[StageEvent],
                       error_message: str) -> AsyncIterator[StageEvent]:
        try:
            with Timer("total", session.timings):
                async for event in pipeline:
                    yield session.record(event)
        except Exception as e:
            # Hard failure: one error event, never a completed after it.
            logger.exception(f"❌ {session.search_type} search failed for '{session.query[:50]}' "
                             f"at stage {session.stage}: {e}")
            if not session.finished:
                yield session.record(StageEvent.error(error_message))
            return

        if session.stage == SearchStatus.COMPLETED:
            self._log_search(session)

    async def _career_pipeline(self, session: SearchSession) -> AsyncIterator[StageEvent]:
        yield StageEvent.progress(SearchStatus.ANALYZING, CAREER_MESSAGES[SearchStatus.ANALYZING])

        with Timer("context", session.timings):
            context = await self._load_context(session.viewer)

        yield StageEvent.progress(SearchStatus.SEARCHING, CAREER_MESSAGES[SearchStatus.SEARCHING])
        yield StageEvent.progress(SearchStatus.PROCESSING, CAREER_MESSAGES[SearchStatus.PROCESSING])

        with Timer("oracle", session.timings):
            async for heartbeat in self._understand(session, context):
                yield heartbeat
        directive = session.directive

        yield StageEvent.progress(SearchStatus.MATCHING, CAREER_MESSAGES[SearchStatus.MATCHING])

        with Timer("store", session.timings):
            resources = await self.store.search(directive.to_criteria(limit=self.page_size))

        visible = self.policy.redact(resources, session.viewer.plan)
        guidance = directive.guidance or (FALLBACK_GUIDANCE if directive.from_fallback else "")

        session.results_count = len(resources)
        session.used_fallback = directive.from_fallback
        yield StageEvent.completed(SearchResultPayload(
            guidance=guidance,
            resources=visible,
            query=session.query,
            total_results=len(resources),
            preview_limited=not self._has_full_access(session.viewer),
        ))

    async def _contact_pipeline(self, session: SearchSession) -> AsyncIterator[StageEvent]:
        yield StageEvent.progress(SearchStatus.ANALYZING, CONTACT_MESSAGES[SearchStatus.ANALYZING])
        yield StageEvent.progress(SearchStatus.SEARCHING, CONTACT_MESSAGES[SearchStatus.SEARCHING])

        with Timer("store", session.timings):
            matches = await self.contact_store.search(self._contact_criteria(session.query))

        yield StageEvent.progress(SearchStatus.VERIFYING, CONTACT_MESSAGES[SearchStatus.VERIFYING])

        used_suggestions = False
        if not matches:
            with Timer("oracle", session.timings):
                suggestions = await self.oracle.suggest_alternatives(session.query)
            for suggestion in suggestions[:2]:
                suggested = await self.contact_store.search(self._contact_criteria(suggestion))
                if suggested:
                    logger.info(f"🔁 Contact search matched suggestion '{suggestion}' for '{session.query}'")
                    matches = suggested
                    used_suggestions = True
                    break

        visible = self.policy.redact(matches, session.viewer.plan)
        session.results_count = len(matches)
        session.used_fallback = used_suggestions
        yield StageEvent.completed(SearchResultPayload(
            guidance="",
            resources=visible,
            query=session.query,
            total_results=len(matches),
            preview_limited=not self._has_full_access(session.viewer),
        ))

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _has_full_access(self, viewer: Viewer) -> bool:
        return self.policy.has_access(viewer.plan, AccessTier.UNLIMITED)

    def _contact_criteria(self, text: str) -> SearchCriteria:
        terms = [t for t in text.lower().split() if len(t) >= CONTACT_MIN_TERM_LENGTH]
        return SearchCriteria(keywords=terms or [text.strip().lower()], limit=self.page_size)

    async def _load_context(self, viewer: Viewer) -> Optional[ViewerContext]:
        if not viewer.is_identified or self.context_loader is None:
            return None
        try:
            return await self.context_loader(viewer.user_id)
        except Exception as e:
            # The profile only enriches the prompt; a search goes on without it.
            logger.warning(f"⚠️ Viewer context unavailable for {viewer.user_id}: {e}")
            return None

    async def _understand(self, session: SearchSession,
                          context: Optional[ViewerContext]) -> AsyncIterator[StageEvent]:
        """
        Run the oracle while relaying its streamed chunks as throttled
        `processing` heartbeats. The directive lands on session.directive
        once the model output is complete and parsed.
        """
        chunks: asyncio.Queue = asyncio.Queue()

        def on_chunk(chunk: str):
            session.llm_buffer.append(chunk)
            chunks.put_nowait(chunk)

        task = asyncio.create_task(self.oracle.understand(session.query, context, on_chunk=on_chunk))
        pending_get: Optional[asyncio.Future] = None
        last_beat = time.monotonic()
        try:
            while not task.done():
                if pending_get is None:
                    pending_get = asyncio.ensure_future(chunks.get())
                done, _ = await asyncio.wait({task, pending_get}, return_when=asyncio.FIRST_COMPLETED)
                if pending_get in done:
                    pending_get = None
                    now = time.monotonic()
                    if not task.done() and now - last_beat >= self.heartbeat_interval:
                        last_beat = now
                        yield StageEvent.progress(SearchStatus.PROCESSING, HEARTBEAT_MESSAGE)
        finally:
            if pending_get is not None:
                pending_get.cancel()
            if not task.done():
                task.cancel()

        try:
            session.directive = task.result()
        except Exception as e:
            logger.warning(f"⚠️ Query oracle raised unexpectedly ({e}), using keyword fallback")
            session.directive = SearchDirective.fallback(session.query)

    def _log_search(self, session: SearchSession):
        if self.search_logger is None:
            return
        entry = SearchLogEntry(
            query=session.query,
            results_count=session.results_count,
            search_type=session.search_type,
            user_id=session.viewer.user_id,
            used_fallback=session.used_fallback,
            timings=dict(session.timings),
        )
        task = asyncio.create_task(self._write_log(entry))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _write_log(self, entry: SearchLogEntry):
        try:
            await self.search_logger(entry)
        except Exception as e:
            logger.warning(f"⚠️ Search analytics write failed: {e}")
