import asyncio
import json

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch

from cache.redis_cache_helper import DirectiveCache
from db.schemas.user import ViewerContext
from llm.base_adapter import LLMAdapter
from llm.gemini_adapter import GeminiModelAdapter
from llm.ollama_adapter import OllamaModelAdapter
from llm.openai_adapter import OpenAICompatibleAdapter
from llm.query_oracle import QueryUnderstandingOracle
from search.exceptions import OracleError
from search.models import SearchDirective

VALID_OUTPUT = json.dumps({
    "guidance": "Register your seller account first.",
    "relevantResourceTypes": ["SBA & Business Development"],
    "searchKeywords": ["amazon", "business address"],
    "industryFilter": "null",
    "locationRelevant": False,
})


def openai_stream(text, pieces=3):
    """Chat-completions SSE body delivering `text` in a few deltas."""
    size = max(1, len(text) // pieces)
    chunks = [text[i:i + size] for i in range(0, len(text), size)]
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}" for c in chunks]
    lines.append("data: [DONE]")
    return "\n\n".join(lines) + "\n\n"


def openai_oracle(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = OpenAICompatibleAdapter("gpt-4.1-mini", http_client=client, base_url="https://llm.test/v1",
                                      api_key="sk-test")
    adapter.setup()
    return QueryUnderstandingOracle(adapter, **kwargs)


class SlowAdapter(LLMAdapter):
    """Adapter that never finishes in time."""

    def setup(self):
        self.is_ready = True
        return True

    async def stream_generate(self, system_prompt, user_prompt, max_token=1000, temp=0.2):
        yield '{"guidance": '
        await asyncio.sleep(5)
        yield '"late"}'


class TestParseDirective:
    """Strict parsing of the model output."""

    def test_valid_json(self):
        directive = QueryUnderstandingOracle.parse_directive(VALID_OUTPUT)
        assert directive.search_keywords == ["amazon", "business address"]
        assert directive.relevant_resource_types == ["SBA & Business Development"]
        assert directive.industry_filter is None
        assert directive.from_fallback is False

    def test_code_fences_are_stripped(self):
        directive = QueryUnderstandingOracle.parse_directive(f"```json\n{VALID_OUTPUT}\n```")
        assert directive.guidance == "Register your seller account first."

    @pytest.mark.parametrize("text", ["", "   ", "not json", "[1, 2]", '{"searchKeywords": "amazon"}'])
    def test_invalid_output_raises(self, text):
        with pytest.raises(OracleError):
            QueryUnderstandingOracle.parse_directive(text)

    def test_missing_fields_default(self):
        directive = QueryUnderstandingOracle.parse_directive('{"guidance": "Hi"}')
        assert directive.search_keywords == []
        assert directive.location_relevant is False


class TestUnderstand:
    """The oracle never raises for model-side failures."""

    async def test_streams_chunks_and_parses(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, text=openai_stream(VALID_OUTPUT))

        oracle = openai_oracle(handler)
        chunks = []
        directive = await oracle.understand("Amazon business address", on_chunk=chunks.append)

        assert directive.search_keywords == ["amazon", "business address"]
        assert "".join(chunks) == VALID_OUTPUT
        body = requests[0]
        assert body["stream"] is True
        assert body["response_format"] == {"type": "json_object"}
        assert 'User question: "Amazon business address"' in body["messages"][1]["content"]

    async def test_invalid_json_falls_back_to_raw_query(self):
        oracle = openai_oracle(lambda request: httpx.Response(200, text=openai_stream("I think you should...")))
        directive = await oracle.understand("Amazon business address")

        assert directive.from_fallback is True
        assert "Amazon business address" in directive.search_keywords

    async def test_http_error_falls_back(self):
        oracle = openai_oracle(lambda request: httpx.Response(500, text="boom"))
        directive = await oracle.understand("remote jobs")
        assert directive == SearchDirective.fallback("remote jobs")

    async def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        directive = await openai_oracle(handler).understand("remote jobs")
        assert directive.from_fallback is True

    async def test_timeout_falls_back(self):
        adapter = SlowAdapter("slow")
        adapter.setup()
        oracle = QueryUnderstandingOracle(adapter, timeout=0.05)

        directive = await oracle.understand("remote jobs")
        assert directive.from_fallback is True
        assert directive.search_keywords == ["remote jobs"]

    async def test_adapter_not_ready_falls_back(self):
        adapter = OpenAICompatibleAdapter("gpt-4.1-mini", http_client=Mock(), api_key=None)
        adapter.api_key = None
        adapter.setup()
        directive = await QueryUnderstandingOracle(adapter).understand("remote jobs")
        assert directive.from_fallback is True

    async def test_viewer_context_is_in_prompt(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, text=openai_stream(VALID_OUTPUT))

        context = ViewerContext(location="Seattle, WA", industry="Retail", interests=["e-commerce"])
        await openai_oracle(handler).understand("Amazon business address", context)

        system_prompt = requests[0]["messages"][0]["content"]
        assert "User location: Seattle, WA." in system_prompt
        assert "User interests: e-commerce." in system_prompt


class TestDirectiveCaching:
    """Cache lookups around the model call."""

    async def test_cache_hit_skips_model(self):
        cached = SearchDirective(guidance="cached", search_keywords=["amazon"])
        cache = Mock()
        cache.get_directive = AsyncMock(return_value=cached)
        cache.cache_directive = AsyncMock()
        handler = Mock()

        oracle = openai_oracle(handler, cache=cache)
        directive = await oracle.understand("Amazon business address")

        assert directive is cached
        handler.assert_not_called()
        cache.cache_directive.assert_not_called()

    async def test_cache_miss_stores_directive(self):
        cache = Mock()
        cache.get_directive = AsyncMock(return_value=None)
        cache.cache_directive = AsyncMock()

        oracle = openai_oracle(lambda request: httpx.Response(200, text=openai_stream(VALID_OUTPUT)), cache=cache)
        directive = await oracle.understand("Amazon business address")

        cache.cache_directive.assert_awaited_once()
        args = cache.cache_directive.call_args[0]
        assert args[0] == "Amazon business address"
        assert args[1] == directive
        assert args[3] == "gpt-4.1-mini"

    async def test_stalled_cache_read_is_bounded_by_timeout(self):
        class StalledRedis:
            async def get(self, key):
                await asyncio.sleep(3600)

        handler = Mock()
        oracle = openai_oracle(handler, cache=DirectiveCache(redis_client=StalledRedis()), timeout=0.05)

        directive = await asyncio.wait_for(oracle.understand("Amazon business address"), 2)

        assert directive == SearchDirective.fallback("Amazon business address")
        handler.assert_not_called()

    async def test_stalled_cache_write_keeps_model_directive(self):
        cache = Mock()
        cache.get_directive = AsyncMock(return_value=None)

        async def stalled_write(*args):
            await asyncio.sleep(3600)

        cache.cache_directive = stalled_write
        oracle = openai_oracle(lambda request: httpx.Response(200, text=openai_stream(VALID_OUTPUT)),
                               cache=cache, timeout=0.2)

        directive = await asyncio.wait_for(oracle.understand("Amazon business address"), 2)

        assert directive.from_fallback is False
        assert directive.search_keywords == ["amazon", "business address"]


class TestSuggestAlternatives:
    """Alternative names for the contact search."""

    async def test_suggestions_are_cleaned(self):
        output = json.dumps({"suggestions": ["1. Amazon.com, Inc.", "2. Amazon Customer Service", "AWS", "Extra"]})
        oracle = openai_oracle(lambda request: httpx.Response(200, text=openai_stream(output)))

        assert await oracle.suggest_alternatives("amzn") == ["Amazon.com, Inc.", "Amazon Customer Service", "AWS"]

    async def test_failure_gives_empty_list(self):
        oracle = openai_oracle(lambda request: httpx.Response(200, text=openai_stream("nope")))
        assert await oracle.suggest_alternatives("amzn") == []


class TestFromModelKey:
    """Oracle construction from the model registry."""

    def test_builds_adapter_for_backend(self):
        oracle = QueryUnderstandingOracle.from_model_key("flash", http_client=Mock())
        assert isinstance(oracle.adapter, GeminiModelAdapter)
        assert oracle.model_name == "gemini-2.5-flash"

    def test_unknown_model_key(self):
        with pytest.raises(ValueError):
            QueryUnderstandingOracle.from_model_key("gpt-99")


class TestAdapters:
    """Wire formats of the non-OpenAI backends."""

    async def test_gemini_stream(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-test")
        body = "\n\n".join([
            "data: " + json.dumps({"candidates": [{"content": {"parts": [{"text": '{"guidance": '}]}}]}),
            "data: " + json.dumps({"candidates": [{"content": {"parts": [{"text": '"ok"}'}]},
                                                   "finishReason": "STOP"}],
                                   "usageMetadata": {"totalTokenCount": 12}}),
        ]) + "\n\n"
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=body)

        adapter = GeminiModelAdapter("gemini-2.5-flash", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler)))
        assert adapter.setup() is True

        assert await adapter.ask("system", "user") == '{"guidance": "ok"}'
        assert seen[0].url.params["alt"] == "sse"
        assert json.loads(seen[0].content)["generationConfig"]["responseMimeType"] == "application/json"

    async def test_gemini_safety_stop_raises(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-test")
        body = "data: " + json.dumps({"candidates": [{"finishReason": "SAFETY"}]}) + "\n\n"
        adapter = GeminiModelAdapter("gemini-2.5-flash", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=body))))
        adapter.setup()

        with pytest.raises(OracleError):
            await adapter.ask("system", "user")

    async def test_ollama_stream(self):
        body = "\n".join([
            json.dumps({"message": {"content": '{"guidance":'}, "done": False}),
            json.dumps({"message": {"content": ' "ok"}'}, "done": True}),
        ])
        adapter = OllamaModelAdapter("qwen2.5", base_url="http://ollama.test", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=body))))
        adapter.is_ready = True

        assert await adapter.ask("system", "user") == '{"guidance": "ok"}'

    @patch("llm.ollama_adapter.requests.get")
    def test_ollama_setup_checks_pulled_models(self, mock_get):
        mock_get.return_value = Mock(status_code=200, json=Mock(return_value={
            "models": [{"name": "qwen2.5:3b-instruct-q4_K_M"}]}))
        assert OllamaModelAdapter("qwen2.5").setup() is True

        mock_get.return_value.json.return_value = {"models": []}
        assert OllamaModelAdapter("qwen2.5").setup() is False

    async def test_ask_passes_chunks_to_callback(self):
        adapter = OllamaModelAdapter("qwen2.5", base_url="http://ollama.test", http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="\n".join([
                json.dumps({"message": {"content": "a"}, "done": False}),
                json.dumps({"message": {"content": "b"}, "done": True}),
            ])))))
        adapter.is_ready = True
        chunks = []

        assert await adapter.ask("system", "user", on_chunk=chunks.append) == "ab"
        assert chunks == ["a", "b"]
