import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from cache.redis_cache_helper import DirectiveCache
from db.schemas.user import ViewerContext
from llm.base_adapter import LLMAdapter
from llm.query_oracle import QueryUnderstandingOracle
from search.access_policy import CONTACT_FIELDS
from search.contact_directory import contact_directory_store
from search.exceptions import InvalidQueryError, ResourceStoreError
from search.models import SearchDirective, SearchLogEntry, SearchStatus, Viewer
from search.orchestrator import (FALLBACK_GUIDANCE, GENERIC_ERROR_MESSAGE, SSE_DONE, SearchOrchestrator,
                                 encode_sse, validate_query)
from search.resource_store import InMemoryResourceStore, ResourceStore

CAREER_ORDER = ["analyzing", "searching", "processing", "matching", "completed"]

FREE = Viewer(user_id="u-free", email="free@example.com", plan="free")
PREMIUM = Viewer(user_id="u-premium", email="premium@example.com", plan="premium")


async def collect(events):
    return [event async for event in events]


def statuses(events):
    return [e.status.value for e in events]


def collapse(names):
    """Drop repeated consecutive statuses (processing heartbeats)."""
    out = []
    for name in names:
        if not out or out[-1] != name:
            out.append(name)
    return out


class FailingStore(ResourceStore):
    async def search(self, criteria):
        raise ResourceStoreError("catalog down")


@pytest.fixture
def orchestrator(fake_oracle, memory_store, policy):
    return SearchOrchestrator(fake_oracle, memory_store, policy, contact_store=contact_directory_store(),
                              heartbeat_interval=0)


class TestValidateQuery:

    @pytest.mark.parametrize("query", [None, "", "   ", "\n\t"])
    def test_empty_query_rejected(self, query):
        with pytest.raises(InvalidQueryError):
            validate_query(query)

    def test_query_is_trimmed(self):
        assert validate_query("  remote jobs ") == "remote jobs"

    def test_rejected_before_any_event(self, orchestrator):
        with pytest.raises(InvalidQueryError):
            orchestrator.career_search("   ", FREE)


class TestCareerSearch:
    """Stage protocol of the AI career search."""

    async def test_stage_order(self, orchestrator):
        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        assert collapse(statuses(events)) == CAREER_ORDER

    async def test_exactly_one_terminal_event(self, orchestrator):
        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        terminal = [e for e in events if e.status.is_terminal]
        assert len(terminal) == 1
        assert events[-1] is terminal[0]

    async def test_stage_messages(self, orchestrator):
        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        messages = {e.status.value: e.message for e in events if e.message}
        assert messages["analyzing"] == "Understanding your question..."
        assert messages["matching"] == "Finding matching resources..."

    async def test_heartbeat_per_chunk(self, oracle_factory, memory_store, policy):
        oracle = oracle_factory(chunks=["{", '"guidance"', ": ", '"x"', "}"], chunk_delay=0.01)
        orchestrator = SearchOrchestrator(oracle, memory_store, policy, heartbeat_interval=0)

        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        processing = [e for e in events if e.status == SearchStatus.PROCESSING]
        assert len(processing) > 1
        assert collapse(statuses(events)) == CAREER_ORDER

    async def test_heartbeats_are_throttled(self, oracle_factory, memory_store, policy):
        oracle = oracle_factory(chunks=["a"] * 20, chunk_delay=0.001)
        orchestrator = SearchOrchestrator(oracle, memory_store, policy, heartbeat_interval=60)

        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        processing = [e for e in events if e.status == SearchStatus.PROCESSING]
        assert len(processing) == 1

    async def test_empty_results_complete(self, oracle_factory, memory_store, policy):
        oracle = oracle_factory(directive=SearchDirective(guidance="Hmm.", search_keywords=["zzz-nothing"]))
        orchestrator = SearchOrchestrator(oracle, memory_store, policy)

        events = await collect(orchestrator.career_search("zzz", FREE))
        result = events[-1].result
        assert events[-1].status == SearchStatus.COMPLETED
        assert result.total_results == 0
        assert result.resources == []

    async def test_store_failure_is_single_error(self, fake_oracle, policy):
        orchestrator = SearchOrchestrator(fake_oracle, FailingStore(), policy)

        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        assert statuses(events)[-1] == "error"
        assert "completed" not in statuses(events)
        assert events[-1].message == GENERIC_ERROR_MESSAGE
        assert "catalog down" not in events[-1].message

    async def test_unexpected_oracle_exception_uses_fallback(self, oracle_factory, memory_store, policy):
        oracle = oracle_factory(error=RuntimeError("kaboom"))
        orchestrator = SearchOrchestrator(oracle, memory_store, policy)

        events = await collect(orchestrator.career_search("Amazon", PREMIUM))
        result = events[-1].result
        assert events[-1].status == SearchStatus.COMPLETED
        assert result.guidance == FALLBACK_GUIDANCE
        assert result.total_results == 5

    async def test_stalled_directive_cache_still_completes(self, memory_store, policy):
        class StalledRedis:
            async def get(self, key):
                await asyncio.sleep(3600)

        class InstantAdapter(LLMAdapter):
            def setup(self):
                self.is_ready = True
                return True

            async def stream_generate(self, system_prompt, user_prompt, max_token=1000, temp=0.2):
                yield '{"searchKeywords": ["amazon"]}'

        adapter = InstantAdapter("instant")
        adapter.setup()
        oracle = QueryUnderstandingOracle(adapter, timeout=0.2, cache=DirectiveCache(redis_client=StalledRedis()))
        orchestrator = SearchOrchestrator(oracle, memory_store, policy, heartbeat_interval=0)

        events = await asyncio.wait_for(collect(orchestrator.career_search("Amazon", PREMIUM)), 2)

        assert collapse(statuses(events)) == CAREER_ORDER
        assert events[-1].result.guidance == FALLBACK_GUIDANCE
        assert events[-1].result.total_results == 5

    async def test_fallback_directive_keeps_raw_query(self, oracle_factory, memory_store, policy):
        oracle = oracle_factory(directive=SearchDirective.fallback("Amazon Jobs"))
        orchestrator = SearchOrchestrator(oracle, memory_store, policy)

        events = await collect(orchestrator.career_search("Amazon Jobs", PREMIUM))
        result = events[-1].result
        assert [r.title for r in result.resources] == ["Amazon Jobs"]
        assert result.guidance == FALLBACK_GUIDANCE

    async def test_context_loaded_for_identified_viewer(self, fake_oracle, memory_store, policy):
        context = ViewerContext(location="Seattle, WA")
        loader = AsyncMock(return_value=context)
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, context_loader=loader)

        await collect(orchestrator.career_search("Amazon", FREE))
        loader.assert_awaited_once_with("u-free")
        assert fake_oracle.calls == [("Amazon", context)]

    async def test_context_failure_is_ignored(self, fake_oracle, memory_store, policy):
        loader = AsyncMock(side_effect=RuntimeError("db gone"))
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, context_loader=loader)

        events = await collect(orchestrator.career_search("Amazon", FREE))
        assert events[-1].status == SearchStatus.COMPLETED
        assert fake_oracle.calls == [("Amazon", None)]

    async def test_anonymous_viewer_skips_context(self, fake_oracle, memory_store, policy):
        loader = AsyncMock()
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, context_loader=loader)

        await collect(orchestrator.career_search("Amazon", Viewer()))
        loader.assert_not_called()


class TestTierScenarios:
    """End-to-end 'Amazon business address' searches per tier."""

    async def test_free_viewer_gets_redacted_preview(self, orchestrator, policy):
        events = await collect(orchestrator.career_search("Amazon business address", FREE))
        result = events[-1].result

        assert 0 < len(result.resources) <= policy.config.preview_limit
        assert result.total_results == 5
        assert result.preview_limited is True
        for resource in result.resources:
            for name in CONTACT_FIELDS:
                assert getattr(resource, name) is None
            assert len(resource.description) <= policy.config.description_budget

    async def test_premium_viewer_gets_full_set(self, orchestrator, memory_store):
        events = await collect(orchestrator.career_search("Amazon business address", PREMIUM))
        result = events[-1].result

        assert len(result.resources) == result.total_results == 5
        assert result.preview_limited is False
        originals = {str(r.id): r for r in memory_store.resources}
        for resource in result.resources:
            original = originals[str(resource.id)]
            assert resource.website == original.website
            assert resource.phone == original.phone
            assert resource.email == original.email
            assert resource.address == original.address
            assert resource.description == original.description

    async def test_unknown_plan_is_treated_as_free(self, orchestrator, policy):
        viewer = Viewer(user_id="u-x", plan="enterprise")
        events = await collect(orchestrator.career_search("Amazon business address", viewer))
        assert len(events[-1].result.resources) == policy.config.preview_limit


class TestContactSearch:
    """Contact directory path."""

    async def test_stage_order_and_match(self, orchestrator):
        events = await collect(orchestrator.contact_search("Amazon business address", PREMIUM))

        assert statuses(events) == ["analyzing", "searching", "verifying", "completed"]
        result = events[-1].result
        assert [r.title for r in result.resources] == ["Amazon.com, Inc."]
        assert result.resources[0].phone == "1-888-280-4331"

    async def test_contact_results_redacted_server_side(self, orchestrator):
        events = await collect(orchestrator.contact_search("Amazon business address", FREE))
        resource = events[-1].result.resources[0]
        assert resource.phone is None
        assert resource.email is None
        assert resource.website is None

    async def test_short_terms_are_ignored(self, orchestrator):
        events = await collect(orchestrator.contact_search("ca dmv", PREMIUM))
        titles = [r.title for r in events[-1].result.resources]
        assert titles == ["California Department of Motor Vehicles"]

    async def test_suggestions_used_when_nothing_matches(self, oracle_factory, policy):
        oracle = oracle_factory(suggestions=["Zzyzx Holdings", "Internal Revenue"])
        orchestrator = SearchOrchestrator(oracle, InMemoryResourceStore(), policy,
                                          contact_store=contact_directory_store())

        events = await collect(orchestrator.contact_search("bureau of taxation", PREMIUM))
        assert oracle.suggestion_calls == ["bureau of taxation"]
        assert [r.title for r in events[-1].result.resources] == ["Internal Revenue Service (IRS)"]

    async def test_no_match_anywhere_completes_empty(self, oracle_factory, policy):
        oracle = oracle_factory(suggestions=[])
        orchestrator = SearchOrchestrator(oracle, InMemoryResourceStore(), policy,
                                          contact_store=contact_directory_store())

        events = await collect(orchestrator.contact_search("zzzz qqqq", PREMIUM))
        assert events[-1].status == SearchStatus.COMPLETED
        assert events[-1].result.total_results == 0

    async def test_contact_store_failure(self, fake_oracle, memory_store, policy):
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, contact_store=FailingStore())
        events = await collect(orchestrator.contact_search("amazon", PREMIUM))
        assert statuses(events)[-1] == "error"
        assert len([e for e in events if e.status.is_terminal]) == 1


class TestSearchLogging:
    """Fire-and-forget analytics."""

    async def test_completed_search_is_logged(self, fake_oracle, memory_store, policy):
        search_logger = AsyncMock()
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, search_logger=search_logger)

        await collect(orchestrator.career_search("Amazon", FREE))
        await orchestrator.drain_background_tasks()

        entry = search_logger.call_args[0][0]
        assert isinstance(entry, SearchLogEntry)
        assert entry.query == "Amazon"
        assert entry.results_count == 5
        assert entry.user_id == "u-free"
        assert entry.search_type == "career"
        assert {"oracle", "store", "total"} <= set(entry.timings)

    async def test_logger_failure_does_not_break_search(self, fake_oracle, memory_store, policy):
        search_logger = AsyncMock(side_effect=RuntimeError("db down"))
        orchestrator = SearchOrchestrator(fake_oracle, memory_store, policy, search_logger=search_logger)

        events = await collect(orchestrator.career_search("Amazon", FREE))
        await orchestrator.drain_background_tasks()
        assert events[-1].status == SearchStatus.COMPLETED

    async def test_failed_search_is_not_logged(self, fake_oracle, policy):
        search_logger = AsyncMock()
        orchestrator = SearchOrchestrator(fake_oracle, FailingStore(), policy, search_logger=search_logger)

        await collect(orchestrator.career_search("Amazon", FREE))
        await orchestrator.drain_background_tasks()
        search_logger.assert_not_called()


class TestSseFraming:
    """Wire framing of the event stream."""

    async def test_frames_and_done_sentinel(self, orchestrator):
        frames = await collect(orchestrator.sse_stream(orchestrator.career_search("Amazon", FREE)))

        assert frames[-1] == SSE_DONE
        for frame in frames[:-1]:
            assert frame.startswith("data: ") and frame.endswith("\n\n")
        completed = json.loads(frames[-2][len("data: "):])
        assert completed["status"] == "completed"
        assert set(completed["result"]) == {"guidance", "resources", "query", "totalResults", "previewLimited"}
        assert "message" not in completed

    async def test_done_after_error(self, fake_oracle, policy):
        orchestrator = SearchOrchestrator(fake_oracle, FailingStore(), policy)
        frames = await collect(orchestrator.sse_stream(orchestrator.career_search("Amazon", FREE)))

        assert frames[-1] == SSE_DONE
        assert json.loads(frames[-2][len("data: "):]) == {"status": "error", "message": GENERIC_ERROR_MESSAGE}

    def test_redacted_fields_are_explicit_nulls(self, policy, sample_resources):
        from search.models import SearchResultPayload, StageEvent

        resources = policy.redact(InMemoryResourceStore(sample_resources).resources, "free")
        event = StageEvent.completed(SearchResultPayload(query="q", resources=resources, total_results=6))
        wire = json.loads(encode_sse(event)[len("data: "):])
        assert wire["result"]["resources"][0]["phone"] is None
        assert "phone" in wire["result"]["resources"][0]

    async def test_progress_event_shape(self, orchestrator):
        frames = await collect(orchestrator.sse_stream(orchestrator.career_search("Amazon", FREE)))
        first = json.loads(frames[0][len("data: "):])
        assert first == {"status": "analyzing", "message": "Understanding your question..."}
