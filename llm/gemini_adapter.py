import json
import os
from typing import AsyncIterator, Optional

import httpx

from llm.base_adapter import LLMAdapter
from config.logging_config import logger
from search.exceptions import OracleError


class GeminiModelAdapter(LLMAdapter):
    """
    Concrete implementation of the LLMAdapter for the Gemini API backend using
    the REST `streamGenerateContent` endpoint in server-sent-events mode.
    """

    def __init__(self, model_name: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(model_name, http_client)
        self.api_key = os.getenv("GEMINI_API_KEY")
        self.api_url = (f"https://generativelanguage.googleapis.com/v1beta/models/"
                        f"{self.model_name}:streamGenerateContent?alt=sse")

    def setup(self) -> bool:
        """
        Verifies the Gemini API key is available.
        """
        logger.info(f"🚀 Setting up Gemini API (HTTP) with model: {self.model_name}")

        if not self.api_key:
            logger.error("❌ GEMINI_API_KEY environment variable not found.")
            self.is_ready = False
            return False

        # There is no cheap endpoint to verify the model name, so a present key is enough.
        self.is_ready = True
        logger.info("✅ Gemini API key found. Ready to send requests.")
        return True

    async def stream_generate(self, system_prompt: str, user_prompt: str,
                              max_token: int = 1000, temp: float = 0.2) -> AsyncIterator[str]:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key or "",
        }

        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [
                {"role": "user", "parts": [{"text": user_prompt}]}
            ],
            "generationConfig": {
                "temperature": temp,
                "maxOutputTokens": max_token,
                "responseMimeType": "application/json",
            }
        }

        async with self.http_client.stream("POST", self.api_url, headers=headers, json=payload) as response:
            await self._raise_for_status(response, "Gemini")
            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                try:
                    data = json.loads(line[len("data: "):])
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed Gemini stream line: {line[:80]}")
                    continue

                candidates = data.get("candidates", [])
                if not candidates:
                    continue

                finish_reason = candidates[0].get("finishReason")
                if finish_reason and finish_reason not in ("STOP", "MAX_TOKENS"):
                    logger.error(f"API returned unexpected finish reason: {finish_reason}")
                    raise OracleError(f"Gemini returned unexpected finish reason: {finish_reason}")

                for part in candidates[0].get("content", {}).get("parts", []):
                    text = part.get("text")
                    if text:
                        yield text

                usage = data.get("usageMetadata")
                if usage and finish_reason:
                    logger.info(f"🔹 Gemini tokens: prompt={usage.get('promptTokenCount')} "
                                f"candidates={usage.get('candidatesTokenCount')} "
                                f"total={usage.get('totalTokenCount')}")
