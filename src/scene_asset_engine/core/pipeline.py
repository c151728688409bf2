from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from .audio import NarrationSynthesizer
from .config import AssetPipelineConfig
from .dispatch import GenerationDispatcher
from .errors import FatalGenerationError
from .extraction import LOCATION_DEFAULTED_WARNING, SceneExtractor
from .ports import NarrativeStreamPort
from .resolver import AssetResolver
from .types import (
    CoordinatedResponse,
    PipelineContext,
    PreviousSceneContext,
    ResolvedScene,
    ScenePayload,
)


class CoordinatedPipeline:
    """Runs one game turn: narrative, scene extraction, assets, narration audio.

    Only a failure to produce narrative text is raised (as
    ``FatalGenerationError``). Every later stage degrades and reports into
    ``CoordinatedResponse.errors`` instead.
    """

    def __init__(
        self,
        narrator: NarrativeStreamPort,
        extractor: SceneExtractor,
        resolver: AssetResolver,
        dispatcher: GenerationDispatcher,
        narration: NarrationSynthesizer | None = None,
        *,
        config: AssetPipelineConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._narrator = narrator
        self._extractor = extractor
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._narration = narration
        self._config = config or AssetPipelineConfig()
        self._clock = clock or time.monotonic
        self._logger = logger or logging.getLogger(__name__)

    async def run(self, context: PipelineContext) -> CoordinatedResponse:
        started = self._clock()
        errors: list[str] = []
        self._logger.info("PIPELINE START conversation_id=%s", context.conversation_id)

        narrative_text = await self.generate_narrative(context.chat_messages)

        previous = self.previous_scene_context(context)
        try:
            scene = await self._extractor.extract_structured(narrative_text, previous)
        except Exception as exc:
            self._logger.warning("PIPELINE extraction failed, using fallback: %s", exc)
            errors.append(f"Scene extraction failed, using fallback: {exc}")
            scene = self._extractor.fallback_extraction(narrative_text, previous)
        if LOCATION_DEFAULTED_WARNING in scene.extraction_warnings:
            errors.append(f"Scene location unknown, defaulted to {scene.location!r}")

        try:
            resolved = await self._resolver.resolve_assets(scene, context.npc_descriptions)
        except Exception as exc:
            self._logger.warning("PIPELINE asset resolution failed: %s", exc, exc_info=True)
            resolved = self._resolver.fallback_resolution(
                scene,
                context.npc_descriptions,
                reason=f"Asset resolution failed: {exc}",
            )
        errors.extend(resolved.warnings)

        self._trigger_missing(resolved)

        audio_url, final_scene = await asyncio.gather(
            self._narrate(scene.cleaned_text),
            self._resolver.wait_for_assets(resolved, self._config.pipeline_asset_wait_seconds),
        )

        elapsed_ms = int((self._clock() - started) * 1000)
        self._logger.info(
            "PIPELINE DONE conversation_id=%s elapsed_ms=%s assets_ready=%s audio=%s errors=%s",
            context.conversation_id,
            elapsed_ms,
            final_scene.assets_ready,
            audio_url is not None,
            len(errors),
        )
        return CoordinatedResponse(
            scene=final_scene,
            tts_audio_url=audio_url,
            generation_time_ms=elapsed_ms,
            errors=errors,
        )

    async def generate_narrative(self, messages: list[dict[str, str]]) -> str:
        started = self._clock()
        parts: list[str] = []
        try:
            async for chunk in self._narrator.stream_narrative(messages):
                if chunk:
                    parts.append(chunk)
        except Exception as exc:
            self._logger.error("PIPELINE narrative generation failed: %s", exc)
            raise FatalGenerationError(f"narrative generation failed: {exc}") from exc

        narrative = "".join(parts)
        if len(narrative.strip()) < self._config.min_narrative_chars:
            self._logger.error("PIPELINE narrative too short chars=%s", len(narrative.strip()))
            raise FatalGenerationError("narrative generation returned empty or invalid response")

        self._logger.info(
            "PIPELINE narrative chars=%s elapsed_ms=%s",
            len(narrative),
            int((self._clock() - started) * 1000),
        )
        return narrative

    @staticmethod
    def previous_scene_context(context: PipelineContext) -> PreviousSceneContext:
        state: dict[str, Any] = context.game_state or {}
        trial_progress: dict[str, Any] = {}
        arc = context.story_arc
        if arc:
            try:
                index = int(arc.get("currentChapterIndex", 0))
            except (TypeError, ValueError):
                index = 0
            chapters = arc.get("chapters") or []
            trial_progress["currentTrial"] = index + 1
            if 0 <= index < len(chapters) and isinstance(chapters[index], dict):
                trial_progress["trialName"] = chapters[index].get("title")
        return PreviousSceneContext(
            location=state.get("location") or None,
            time=state.get("gameTime") or None,
            npc_descriptions=dict(context.npc_descriptions),
            trial_progress=trial_progress,
        )

    def _trigger_missing(self, resolved: ResolvedScene) -> None:
        scene: ScenePayload = resolved.scene
        if resolved.pending_generations.background and scene.location:
            self._dispatcher.trigger_background(scene.location)
        for character in scene.characters:
            if character.action == "generate":
                self._dispatcher.trigger_portrait(character.name, character.expression, character.description)

    async def _narrate(self, text: str) -> str | None:
        if self._narration is None:
            return None
        try:
            return await self._narration.narrate(text)
        except Exception as exc:
            self._logger.warning("PIPELINE narration audio unavailable: %s", exc)
            return None
