from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Sequence

import httpx

DEFAULT_BACKGROUND_PATH = "/api/vn-assets/backgrounds/generate"
DEFAULT_PORTRAIT_PATH = "/api/vn-assets/portraits/generate"
DEFAULT_SPEECH_PATH = "/api/tts/speak"


class HTTPGenerationTrigger:
    """Posts generation requests; a 2xx only means the request was accepted."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        background_path: str = DEFAULT_BACKGROUND_PATH,
        portrait_path: str = DEFAULT_PORTRAIT_PATH,
    ):
        self._client = client
        self._background_path = background_path
        self._portrait_path = portrait_path

    async def request_background(self, location_name: str) -> None:
        response = await self._client.post(self._background_path, json={"locationName": location_name})
        response.raise_for_status()

    async def request_portrait(
        self,
        character_name: str,
        expression: str,
        description: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {"characterName": character_name, "expression": expression}
        if description:
            payload["description"] = description
        response = await self._client.post(self._portrait_path, json=payload)
        response.raise_for_status()


class HTTPSpeechSynthesizer:
    def __init__(self, client: httpx.AsyncClient, *, path: str = DEFAULT_SPEECH_PATH):
        self._client = client
        self._path = path

    async def synthesize(self, text: str) -> AsyncIterator[bytes]:
        async with self._client.stream("POST", self._path, json={"text": text}) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                yield chunk


class OpenAICompatibleChat:
    """Chat-completions client for any OpenAI-compatible server.

    Serves both the streamed narrative call and the one-shot extraction
    call. ``client`` should carry the base URL and auth headers.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        model: str,
        path: str = "/chat/completions",
        logger: logging.Logger | None = None,
    ):
        self._client = client
        self._model = model
        self._path = path
        self._logger = logger or logging.getLogger(__name__)

    async def stream_narrative(self, messages: Sequence[dict[str, str]]) -> AsyncIterator[str]:
        payload = {"model": self._model, "messages": list(messages), "stream": True}
        async with self._client.stream("POST", self._path, json=payload) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                line = line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    self._logger.debug("Skipping malformed stream event: %s", data[:200])
                    continue
                choices = event.get("choices") or []
                if not choices:
                    continue
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> str | None:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = await self._client.post(
            self._path,
            json={
                "model": self._model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        response.raise_for_status()
        choices = response.json().get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")
