# File: llm/ollama_adapter.py

import json
from typing import AsyncIterator, Optional

import httpx
import requests

from config.logging_config import logger
from config.settings import OLLAMA_BASE_URL
from llm.base_adapter import LLMAdapter


class OllamaModelAdapter(LLMAdapter):
    """
    Concrete implementation of the LLMAdapter for a local Ollama server.

    Setup only verifies that the server answers and the model is pulled; it
    never installs anything. Generation uses the streaming /api/chat
    endpoint, which returns one JSON object per line.
    """

    def __init__(self, model_name: str, http_client: Optional[httpx.AsyncClient] = None,
                 base_url: str = OLLAMA_BASE_URL):
        """
        Args:
            model_name (str): The specific name of the model to use (e.g., 'qwen2.5:3b-instruct-q4_K_M').
            http_client (httpx.AsyncClient): Optional client used for generation.
            base_url (str): The URL where the Ollama server is running.
        """
        super().__init__(model_name, http_client)
        self.base_url = base_url.rstrip("/")

    def check_ollama_status(self) -> bool:
        """
        Checks if the Ollama server is running and if the required model is installed.
        Returns:
            bool: True if the server is responsive and the model is found, False otherwise.
        """
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=3)
            if response.status_code != 200:
                logger.warning(f"Ollama server responded with status code: {response.status_code}")
                return False

            models = response.json().get("models", [])
            model_names = [model["name"] for model in models]

            # Flexible check: 'qwen2.5' matches 'qwen2.5:3b-instruct-q4_K_M'
            return any(self.model_name in name for name in model_names)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Ollama connection error: {e}")
            return False
        except (ValueError, KeyError) as e:
            logger.error(f"Unexpected answer during Ollama status check: {e}")
            return False

    def setup(self) -> bool:
        logger.info(f"🚀 Setting up Ollama with model: {self.model_name}")
        self.is_ready = self.check_ollama_status()
        if not self.is_ready:
            logger.error(f"❌ Ollama at {self.base_url} is unreachable or model '{self.model_name}' "
                         f"is not pulled (run: ollama pull {self.model_name})")
        return self.is_ready

    async def stream_generate(self, system_prompt: str, user_prompt: str,
                              max_token: int = 1000, temp: float = 0.2) -> AsyncIterator[str]:
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "format": "json",
            "stream": True,
            "options": {"temperature": temp, "num_predict": max_token}
        }

        async with self.http_client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
            await self._raise_for_status(response, "Ollama")
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed Ollama stream line: {line[:80]}")
                    continue
                content = (data.get("message") or {}).get("content")
                if content:
                    yield content
                if data.get("done"):
                    break
