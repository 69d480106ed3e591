from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from innervoice.core.config import GeminiConfig

logger = logging.getLogger(__name__)

LLMCaller = Callable[[str, str], Awaitable[str]]


class LLMResponseError(Exception):
    """The generative backend failed or answered without usable text."""


def extract_text(data: Any) -> str:
    """First candidate text of a ``generateContent`` response."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMResponseError("Invalid response format from Gemini API") from exc
    if not isinstance(text, str) or not text.strip():
        raise LLMResponseError("Gemini API returned an empty candidate")
    return text


class GeminiBackend:
    """Text completion over the Gemini REST API.

    Instances are ``LLMCaller``s: ``await backend(system, user)``.
    """

    def __init__(self, config: GeminiConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._owns_client = client is None

    async def __aenter__(self) -> GeminiBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _payload(self, system: str, user: str) -> dict[str, Any]:
        parts = [{"text": text} for text in (system, user) if text]
        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if self._config.temperature is not None:
            payload["generationConfig"] = {"temperature": self._config.temperature}
        return payload

    async def complete(self, system: str, user: str) -> str:
        if not self._config.api_key:
            raise LLMResponseError("GEMINI_API_KEY is not configured")
        try:
            response = await self._client.post(
                self._config.url,
                params={"key": self._config.api_key},
                json=self._payload(system, user),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise LLMResponseError(
                f"Gemini API error: {exc.response.status_code} {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LLMResponseError(f"Gemini API request failed: {exc}") from exc
        return extract_text(data)

    async def __call__(self, system: str, user: str) -> str:
        return await self.complete(system, user)
