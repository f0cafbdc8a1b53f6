"""
Async consumer of the search event stream.

Keeps the UI-facing state of one search box: progress, status text, result
and error. Starting a new search supersedes the running one; events of a
superseded search are dropped.
"""
import asyncio
import json
from enum import Enum
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from config.config_loader import load_pricing_config
from config.logging_config import logger
from search.access_policy import AccessPolicy
from search.exceptions import SearchError
from search.models import SearchResultPayload, SearchStatus

PROGRESS = {
    SearchStatus.ANALYZING.value: 20,
    SearchStatus.SEARCHING.value: 40,
    SearchStatus.PROCESSING.value: 60,
    SearchStatus.VERIFYING.value: 75,
    SearchStatus.MATCHING.value: 80,
    SearchStatus.COMPLETED.value: 100,
}

WATCHDOG_SECONDS = 45
TIMEOUT_MESSAGE = "The search is taking too long. Please try again."


class SearchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    COMPLETED = "completed"
    ERROR = "error"


class SearchController:

    def __init__(self, base_url: str, tier: str = "free", http_client: Optional[httpx.AsyncClient] = None,
                 token: Optional[str] = None, policy: Optional[AccessPolicy] = None,
                 watchdog_seconds: float = WATCHDOG_SECONDS, path: str = "/v1/search",
                 on_progress: Optional[Callable[[str, int, Optional[str]], None]] = None,
                 on_completed: Optional[Callable[[SearchResultPayload], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None):
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.tier = tier
        self.token = token
        self.policy = policy or AccessPolicy(load_pricing_config())
        self.watchdog_seconds = watchdog_seconds
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.on_progress = on_progress
        self.on_completed = on_completed
        self.on_error = on_error

        self.state = SearchState.IDLE
        self.status: Optional[str] = None
        self.message: Optional[str] = None
        self.progress = 0
        self.result: Optional[SearchResultPayload] = None
        self.error: Optional[str] = None

        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_searching(self) -> bool:
        return self.state == SearchState.SEARCHING

    def search(self, query: Optional[str]) -> Optional[asyncio.Task]:
        """Start a search, superseding any running one. Empty queries are ignored."""
        if not query or not query.strip():
            return None

        self.cancel()
        generation = self._generation
        self.state = SearchState.SEARCHING
        self.status = None
        self.message = None
        self.progress = 0
        self.result = None
        self.error = None
        self._task = asyncio.create_task(self._run(generation, query.strip()))
        return self._task

    def cancel(self):
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.state == SearchState.SEARCHING:
            self.state = SearchState.IDLE
        self._task = None

    async def aclose(self):
        self.cancel()
        await self.http_client.aclose()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(self, generation: int, query: str):
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with self.http_client.stream("POST", f"{self.base_url}{self.path}",
                                               json={"query": query}, headers=headers) as response:
                if response.status_code != 200:
                    await response.aread()
                    logger.warning(f"⚠️ Search request failed with HTTP {response.status_code}")
                    self._fail(generation, SearchError.user_message)
                    return

                lines = response.aiter_lines()
                while self._is_current(generation):
                    try:
                        line = await asyncio.wait_for(lines.__anext__(), self.watchdog_seconds)
                    except StopAsyncIteration:
                        break
                    if not line.startswith("data: "):
                        continue
                    data = line[len("data: "):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed event line: {data[:80]}")
                        continue
                    if isinstance(event, dict):
                        self._apply(generation, event)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ No search event within {self.watchdog_seconds}s")
            self._fail(generation, TIMEOUT_MESSAGE)
            return
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Search stream failed: {e}")
            self._fail(generation, SearchError.user_message)
            return
        except Exception:
            logger.exception("❌ Search stream handling failed")
            self._fail(generation, SearchError.user_message)
            return

        if self._is_current(generation) and self.state == SearchState.SEARCHING:
            # Stream closed without a terminal event.
            self._fail(generation, SearchError.user_message)

    def _apply(self, generation: int, event: dict):
        if not self._is_current(generation) or self.state != SearchState.SEARCHING:
            return

        status = event.get("status")
        if status == SearchStatus.ERROR.value:
            self._fail(generation, event.get("message") or SearchError.user_message)
            return

        if status == SearchStatus.COMPLETED.value:
            try:
                result = SearchResultPayload.model_validate(event.get("result") or {})
            except ValidationError as e:
                logger.warning(f"⚠️ Malformed completed event: {e}")
                self._fail(generation, SearchError.user_message)
                return
            # The server already redacted; re-check against the tier known locally.
            result.resources = self.policy.redact(result.resources, self.tier)
            self.result = result
            self.status = status
            self.progress = PROGRESS[status]
            self.state = SearchState.COMPLETED
            if self.on_completed:
                self.on_completed(result)
            return

        if status in PROGRESS:
            self.status = status
            self.message = event.get("message")
            self.progress = PROGRESS[status]
            if self.on_progress:
                self.on_progress(status, self.progress, self.message)

    def _fail(self, generation: int, message: str):
        if not self._is_current(generation) or self.state != SearchState.SEARCHING:
            return
        self.state = SearchState.ERROR
        self.status = SearchStatus.ERROR.value
        self.error = message
        if self.on_error:
            self.on_error(message)
