from abc import abstractmethod, ABC
from typing import AsyncIterator, Callable, Optional

import httpx

from config.settings import LLM_ORACLE_TIMEOUT_SECONDS
from search.exceptions import OracleError


class LLMAdapter(ABC):
    """Abstract Base Class for any LLM backend (OpenAI-compatible, Gemini, Ollama)."""

    def __init__(self, model_name: str, http_client: Optional[httpx.AsyncClient] = None):
        self.model_name = model_name
        self.is_ready = False
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            # The oracle bounds the whole call; this only guards a stalled socket.
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(LLM_ORACLE_TIMEOUT_SECONDS * 2))
        return self._http_client

    @abstractmethod
    def setup(self) -> bool:
        """Check credentials / connectivity for the backend."""
        pass

    @abstractmethod
    def stream_generate(self, system_prompt: str, user_prompt: str,
                        max_token: int = 1000, temp: float = 0.2) -> AsyncIterator[str]:
        """Yield the model's text output chunk by chunk."""
        pass

    async def ask(self, system_prompt: str, user_prompt: str, max_token: int = 1000, temp: float = 0.2,
                  on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """Run a generation to the end and return the concatenated text, passing each chunk to `on_chunk`."""
        if not self.is_ready:
            raise OracleError(f"Model '{self.model_name}' is not set up or ready.")
        parts = []
        async for chunk in self.stream_generate(system_prompt, user_prompt, max_token, temp):
            parts.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)
        return "".join(parts)

    @staticmethod
    async def _raise_for_status(response: httpx.Response, backend: str):
        if response.status_code != 200:
            body = (await response.aread()).decode("utf-8", errors="replace")
            raise OracleError(f"{backend} API Error: HTTP {response.status_code} - {body[:200]}")

    async def aclose(self):
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
