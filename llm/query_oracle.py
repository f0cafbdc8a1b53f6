import asyncio
import json
import re
from typing import Callable, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from cache.redis_cache_helper import DirectiveCache
from config.logging_config import logger
from config.settings import (LLM_ORACLE_TIMEOUT_SECONDS, LLM_MAX_TOKEN_ORACLE, LLM_TEMP_ORACLE,
                             LLM_MODEL_ORACLE)
from db.schemas.user import ViewerContext
from llm.base_adapter import LLMAdapter
from llm.config import LLMConfig
from llm.gemini_adapter import GeminiModelAdapter
from llm.ollama_adapter import OllamaModelAdapter
from llm.openai_adapter import OpenAICompatibleAdapter
from search.exceptions import OracleError
from search.models import SearchDirective

RESOURCE_TYPES = [
    "Job Search Website",
    "Trade Organization",
    "Apprenticeship Program",
    "SBA & Business Development",
    "Learning Platform",
    "Certification Program",
    "Industry-Specific Career Resource",
]

SYSTEM_PROMPT = """You are an expert career and business counselor. Your task is to understand the user's career question and provide relevant guidance along with specific resource recommendations.

Available Resource Types:
{resource_types}

User Context: {user_context}

Based on the user's question, provide:
1. A brief, helpful response to their question (2-3 sentences)
2. A list of specific resource types that would be most relevant
3. Search keywords that should be used to find matching resources in the database

Respond in this JSON format:
{{
  "guidance": "Brief helpful response to the user's question",
  "relevantResourceTypes": ["Job Search Website", "Learning Platform"],
  "searchKeywords": ["keyword1", "keyword2", "keyword3"],
  "industryFilter": "specific industry if mentioned, otherwise null",
  "locationRelevant": true
}}

Respond with raw JSON only. Do not include code blocks, markdown, or any other formatting."""

SUGGESTION_PROMPT = """The user is searching for contact information for: "{query}".

Based on this query, suggest 2-3 alternative search terms or related organizations they might be looking for. Focus on:
1. Official business names
2. Government agencies
3. Customer service departments

Respond with raw JSON only, in the form {{"suggestions": ["term one", "term two"]}}."""

_FENCE_PATTERN = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)

ChunkCallback = Callable[[str], None]


class QueryUnderstandingOracle:
    """
    Turns a free-text career question into a SearchDirective with one
    streamed language-model call.

    The model is treated as unreliable: the call is bounded by a timeout and
    anything that cannot be parsed into the directive schema is replaced by
    the fallback directive (raw query as the only keyword). `understand`
    never raises for model-side failures.
    """

    # A class-level dictionary to store available adapters.
    AVAILABLE_ADAPTERS = {
        "openai": OpenAICompatibleAdapter,
        "gemini": GeminiModelAdapter,
        "ollama": OllamaModelAdapter,
    }

    def __init__(self, adapter: LLMAdapter, timeout: float = LLM_ORACLE_TIMEOUT_SECONDS,
                 cache: Optional[DirectiveCache] = None,
                 max_token: int = LLM_MAX_TOKEN_ORACLE, temp: float = LLM_TEMP_ORACLE):
        self.adapter = adapter
        self.timeout = timeout
        self.cache = cache
        self.max_token = max_token
        self.temp = temp

    @classmethod
    def from_model_key(cls, model_key: str = LLM_MODEL_ORACLE, cache: Optional[DirectiveCache] = None,
                       http_client: Optional[httpx.AsyncClient] = None, **kwargs) -> "QueryUnderstandingOracle":
        """
        Build an oracle for a model listed in LLMConfig.

        Raises:
            ValueError: If the model key or its backend is unknown.
        """
        model_params = LLMConfig.get(model_key)
        backend = model_params["model_backend"]
        AdapterClass = cls.AVAILABLE_ADAPTERS.get(backend)
        if not AdapterClass:
            raise ValueError(
                f"Unknown backend type: {backend}. Must be one of: {list(cls.AVAILABLE_ADAPTERS.keys())}")

        adapter = AdapterClass(model_params["name"], http_client=http_client)
        logger.info(f"⚙️ Query oracle created with {backend} model {model_params['name']}")
        return cls(adapter, cache=cache, **kwargs)

    def setup(self) -> bool:
        ready = self.adapter.setup()
        if not ready:
            logger.warning("⚠️ Query oracle backend not ready; every search will use keyword fallback")
        return ready

    @property
    def model_name(self) -> str:
        return self.adapter.model_name

    @staticmethod
    def build_system_prompt(context: Optional[ViewerContext] = None) -> str:
        return SYSTEM_PROMPT.format(
            resource_types="\n".join(f"- {t}" for t in RESOURCE_TYPES),
            user_context=context.describe() if context else "",
        )

    @staticmethod
    def _strip_fences(text: str) -> str:
        match = _FENCE_PATTERN.match(text)
        return match.group(1) if match else text.strip()

    @classmethod
    def parse_directive(cls, text: str) -> SearchDirective:
        """
        Parse the complete model output.

        Raises:
            OracleError: If the text is not a JSON object matching the directive schema.
        """
        if not text or not text.strip():
            raise OracleError("Empty response from language model")
        try:
            data = json.loads(cls._strip_fences(text))
        except json.JSONDecodeError as e:
            raise OracleError(f"Language model returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise OracleError("Language model returned JSON that is not an object")
        try:
            return SearchDirective.model_validate(data)
        except ValidationError as e:
            raise OracleError(f"Language model output does not match the directive schema: {e}") from e

    async def _collect(self, system_prompt: str, user_prompt: str,
                       on_chunk: Optional[ChunkCallback]) -> str:
        return await self.adapter.ask(system_prompt, user_prompt, self.max_token, self.temp, on_chunk=on_chunk)

    async def understand(self, query: str, context: Optional[ViewerContext] = None,
                         on_chunk: Optional[ChunkCallback] = None) -> SearchDirective:
        """
        Produce a SearchDirective for a (trimmed, non-empty) query.

        Args:
            query: The user's question.
            context: Profile of the identified viewer, if any.
            on_chunk: Called with each text chunk as the model streams.

        Returns:
            The parsed directive, or the fallback directive on timeout,
            transport error or unparseable output.
        """
        context_text = context.describe() if context else ""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        try:
            directive, from_cache = await asyncio.wait_for(
                self._lookup_or_generate(query, context, context_text, on_chunk), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Query oracle timed out after {self.timeout}s, using keyword fallback")
            return SearchDirective.fallback(query)
        except (OracleError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Query oracle failed ({e}), using keyword fallback")
            return SearchDirective.fallback(query)

        if from_cache:
            return directive

        logger.info(f"🔍 Directive for '{query[:50]}': keywords={directive.search_keywords} "
                    f"types={directive.relevant_resource_types} industry={directive.industry_filter}")

        if self.cache is not None:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                await asyncio.wait_for(
                    self.cache.cache_directive(query, directive, context_text, self.model_name), remaining)
            except asyncio.TimeoutError:
                logger.warning("⏱️ Directive cache write skipped: oracle time budget exhausted")
        return directive

    async def _lookup_or_generate(self, query: str, context: Optional[ViewerContext], context_text: str,
                                  on_chunk: Optional[ChunkCallback]) -> Tuple[SearchDirective, bool]:
        if self.cache is not None:
            cached = await self.cache.get_directive(query, context_text, self.model_name)
            if cached is not None:
                return cached, True

        system_prompt = self.build_system_prompt(context)
        user_prompt = f'User question: "{query}"'
        text = await self._collect(system_prompt, user_prompt, on_chunk)
        return self.parse_directive(text), False

    async def suggest_alternatives(self, query: str, limit: int = 3) -> List[str]:
        """Ask the model for alternative organization names. Any failure gives an empty list."""
        try:
            text = await asyncio.wait_for(
                self._collect("You suggest official organization names.", SUGGESTION_PROMPT.format(query=query), None),
                self.timeout)
            data = json.loads(self._strip_fences(text))
        except asyncio.TimeoutError:
            logger.warning("⏱️ Suggestion request timed out")
            return []
        except (OracleError, httpx.HTTPError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ AI search enhancement failed: {e}")
            return []

        suggestions = data.get("suggestions") if isinstance(data, dict) else data
        if not isinstance(suggestions, list):
            return []
        cleaned = [re.sub(r"^\d+\.\s*", "", str(s)).strip() for s in suggestions]
        return [s for s in cleaned if s][:limit]

    async def aclose(self):
        await self.adapter.aclose()
