from __future__ import annotations

from typing import AsyncIterator, Protocol, Sequence


class NarrativeStreamPort(Protocol):
    def stream_narrative(self, messages: Sequence[dict[str, str]]) -> AsyncIterator[str]:
        ...


class TextCompletionPort(Protocol):
    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> str | None:
        ...


class SpeechSynthesisPort(Protocol):
    def synthesize(self, text: str) -> AsyncIterator[bytes]:
        ...


class GenerationTriggerPort(Protocol):
    async def request_background(self, location_name: str) -> None:
        ...

    async def request_portrait(
        self,
        character_name: str,
        expression: str,
        description: str | None = None,
    ) -> None:
        ...
