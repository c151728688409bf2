from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from .config import AssetPipelineConfig
from .normalize import normalize_match_key, portrait_key
from .ports import GenerationTriggerPort


class GenerationDispatcher:
    """Best-effort launcher for asset generation requests.

    Requests run as tracked tasks off the caller's critical path, at most
    ``max_parallel_generations`` at a time. A request for a key that was
    already sent within ``inflight_marker_ttl_seconds`` is skipped; a failed
    request clears its key so a later turn can try again.
    """

    def __init__(
        self,
        trigger: GenerationTriggerPort,
        *,
        config: AssetPipelineConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._trigger = trigger
        self._config = config or AssetPipelineConfig()
        self._clock = clock or time.monotonic
        self._logger = logger or logging.getLogger(__name__)
        self._semaphore = asyncio.Semaphore(max(1, self._config.max_parallel_generations))
        self._tasks: set[asyncio.Task[None]] = set()
        self._inflight: dict[str, float] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def inflight_keys(self) -> tuple[str, ...]:
        return tuple(self._inflight)

    def is_inflight(self, key: str) -> bool:
        expires_at = self._inflight.get(key)
        return expires_at is not None and expires_at > self._clock()

    def trigger_background(self, location_name: str) -> bool:
        key = f"background:{normalize_match_key(location_name)}"
        return self._launch(
            key,
            lambda: self._trigger.request_background(location_name),
            f"background location={location_name!r}",
        )

    def trigger_portrait(
        self,
        character_name: str,
        expression: str,
        description: str | None = None,
    ) -> bool:
        key = f"portrait:{portrait_key(character_name, expression)}"
        return self._launch(
            key,
            lambda: self._trigger.request_portrait(character_name, expression, description),
            f"portrait character={character_name!r} expression={expression}",
        )

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _launch(self, key: str, call: Callable[[], Awaitable[None]], label: str) -> bool:
        now = self._clock()
        self._prune_expired(now)
        if key in self._inflight:
            self._logger.info("GENERATION SKIPPED already in flight %s", label)
            return False
        self._inflight[key] = now + self._config.inflight_marker_ttl_seconds
        task = asyncio.create_task(self._run(key, call, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def _prune_expired(self, now: float) -> None:
        expired = [key for key, expires_at in self._inflight.items() if expires_at <= now]
        for key in expired:
            del self._inflight[key]

    async def _run(self, key: str, call: Callable[[], Awaitable[None]], label: str) -> None:
        async with self._semaphore:
            try:
                await call()
            except Exception:
                self._inflight.pop(key, None)
                self._logger.warning("GENERATION TRIGGER FAILED %s", label, exc_info=True)
                return
        self._logger.info("GENERATION TRIGGERED %s", label)
