import json
import os
from typing import AsyncIterator, Optional

import httpx

from config.logging_config import logger
from config.settings import OPENAI_API_BASE
from llm.base_adapter import LLMAdapter


class OpenAICompatibleAdapter(LLMAdapter):
    """
    Adapter for any endpoint speaking the OpenAI chat-completions protocol
    (OpenAI, Abacus, vLLM, ...), consumed as a server-sent-events stream.
    """

    def __init__(self, model_name: str, http_client: Optional[httpx.AsyncClient] = None,
                 base_url: str = OPENAI_API_BASE, api_key: Optional[str] = None):
        super().__init__(model_name, http_client)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("ABACUSAI_API_KEY")

    def setup(self) -> bool:
        logger.info(f"🚀 Setting up OpenAI-compatible API with model: {self.model_name} ({self.base_url})")
        if not self.api_key:
            logger.error("❌ OPENAI_API_KEY / ABACUSAI_API_KEY environment variable not found.")
            self.is_ready = False
            return False
        self.is_ready = True
        logger.info("✅ API key found. Ready to send requests.")
        return True

    async def stream_generate(self, system_prompt: str, user_prompt: str,
                              max_token: int = 1000, temp: float = 0.2) -> AsyncIterator[str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": max_token,
            "temperature": temp,
            "stream": True,
        }

        async with self.http_client.stream("POST", f"{self.base_url}/chat/completions",
                                           headers=headers, json=payload) as response:
            await self._raise_for_status(response, "OpenAI")
            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[len("data: "):].strip()
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed stream line: {data[:80]}")
                    continue
                choices = parsed.get("choices") or [{}]
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content
