"""
Ollama Client

Async client for local Ollama LLM integration.
Exposes the single `generate(system, user, model)` call the report
pipeline is given; transport retries stay inside the client.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from config import get_settings
from core.errors import LLMError
from core.logging_config import llm_logger as logger


# The only model interface the pipeline depends on
GenerateFn = Callable[[str, str, Optional[str]], Awaitable[str]]


class OllamaClient:
    """
    Async client for Ollama API.

    Features:
    - Connection pooling
    - Retries on timeouts and 5xx
    - Errors surfaced as LLMError
    """

    def __init__(self):
        self.settings = get_settings()
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.llm.base_url,
                timeout=httpx.Timeout(self.settings.llm.timeout),
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate a response from the LLM.

        Args:
            prompt: User prompt
            system: Optional system prompt
            model: Model name (uses default if None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Generated response text (possibly empty)

        Raises:
            LLMError: the request failed after retries
        """
        llm = self.settings.llm
        model = model or llm.model

        client = await self.get_client()

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": llm.temperature if temperature is None else temperature,
                "num_predict": max_tokens or llm.max_tokens,
            }
        }

        if system:
            payload["system"] = system

        # Retry logic
        last_error = None
        for attempt in range(llm.max_retries):
            try:
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()

                data = response.json()
                return data.get("response", "")

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code >= 500:
                    # Server error, retry
                    logger.warning(f"Ollama {e.response.status_code}, attempt {attempt + 1}")
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise LLMError(f"Model request rejected ({e.response.status_code})") from e
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(f"Ollama timeout, attempt {attempt + 1}")
                await asyncio.sleep(2 ** attempt)
                continue
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                break

        logger.error(f"Ollama request failed: {last_error!r}")
        raise LLMError(f"Model request failed: {type(last_error).__name__}: {last_error}")

    async def generate(self, system: str, user: str, model: Optional[str] = None) -> str:
        """The pipeline-facing call: (system, user, model) -> text."""
        return await self.complete(user, system=system, model=model)


# Global instance
ollama_client = OllamaClient()
