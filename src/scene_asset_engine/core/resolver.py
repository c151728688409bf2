from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Mapping

from .catalog import AssetCatalogCache
from .config import AssetPipelineConfig
from .errors import AssetResolutionError
from .normalize import fuzzy_match
from .types import (
    AssetCatalog,
    BackgroundAsset,
    BackgroundDirective,
    PendingGenerations,
    PortraitAsset,
    ResolvedScene,
    ScenePayload,
)


class AssetResolver:
    """Decides per asset whether an existing catalog entry can be reused.

    Reads only; generation requests are issued by the caller.
    """

    def __init__(
        self,
        cache: AssetCatalogCache,
        *,
        config: AssetPipelineConfig | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._cache = cache
        self._config = config or AssetPipelineConfig()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or logging.getLogger(__name__)

    async def read_catalog(self, npc_descriptions: Mapping[str, str] | None = None) -> AssetCatalog:
        try:
            return await self._cache.get_catalog(npc_descriptions)
        except Exception as exc:
            raise AssetResolutionError(str(exc)) from exc

    def find_background(
        self,
        location_name: str,
        catalog: AssetCatalog,
    ) -> tuple[BackgroundAsset | None, float]:
        best: BackgroundAsset | None = None
        best_confidence = 0.0
        for background in catalog.backgrounds:
            match, confidence = fuzzy_match(
                location_name,
                background.location_name,
                self._config.background_match_threshold,
            )
            if match and confidence > best_confidence:
                best = background
                best_confidence = confidence
        return best, best_confidence

    def find_portrait(
        self,
        character_name: str,
        expression: str,
        catalog: AssetCatalog,
    ) -> tuple[PortraitAsset | None, float]:
        cfg = self._config
        best: PortraitAsset | None = None
        best_score = 0.0
        for portrait in catalog.portraits:
            match, score = fuzzy_match(
                character_name,
                portrait.character_name,
                cfg.portrait_match_threshold,
            )
            if not match:
                continue
            if portrait.expression == expression:
                score += cfg.expression_bonus
            if portrait.is_ready:
                score += cfg.ready_bonus
            # ranked on the uncapped score so bonuses still break ties at 1.0
            if score > best_score:
                best = portrait
                best_score = score
        return best, min(best_score, 1.0)

    async def resolve_assets(
        self,
        scene: ScenePayload,
        npc_descriptions: Mapping[str, str] | None = None,
    ) -> ResolvedScene:
        try:
            catalog = await self.read_catalog(npc_descriptions)
        except AssetResolutionError as exc:
            self._logger.warning("RESOLVE catalog read failed, generating everything: %s", exc)
            return self.fallback_resolution(
                scene,
                npc_descriptions,
                reason=f"Asset catalog unavailable: {exc}",
            )

        threshold = self._config.reuse_confidence_threshold
        self._logger.info(
            "RESOLVE location=%r characters=%s",
            scene.location,
            len(scene.characters),
        )

        background, bg_confidence = self.find_background(scene.location, catalog)
        if background is not None and bg_confidence > threshold and background.is_ready:
            scene.background = BackgroundDirective(
                action="use",
                asset_id=background.id,
                location_name=background.location_name,
                reason=f"Matched with {bg_confidence * 100:.0f}% confidence",
                confidence=bg_confidence,
            )
            self._logger.info("RESOLVE background use asset_id=%s (%s)", background.id, background.location_name)
        else:
            if background is None:
                reason = "No matching background found"
            elif bg_confidence <= threshold:
                reason = f"Low confidence match ({bg_confidence * 100:.0f}%)"
            else:
                reason = f"Matched background {background.id} is {background.status}"
            scene.background = BackgroundDirective(
                action="generate",
                asset_id=background.id if background is not None else None,
                location_name=scene.location,
                reason=reason,
                confidence=bg_confidence,
            )
            self._logger.info("RESOLVE background generate location=%r reason=%s", scene.location, reason)

        pending_portraits: list[str] = []
        for character in scene.characters:
            portrait, confidence = self.find_portrait(character.name, character.expression, catalog)
            character.confidence = confidence
            if portrait is not None and confidence > threshold and portrait.is_ready:
                character.action = "use"
                character.matched_asset_id = portrait.id
                self._logger.info("RESOLVE portrait %s use asset_id=%s", character.name, portrait.id)
                continue

            character.action = "generate"
            character.matched_asset_id = portrait.id if portrait is not None else None
            character.description = catalog.npc_descriptions.get(character.name) or character.description
            pending_portraits.append(character.name)
            self._logger.info("RESOLVE portrait %s generate", character.name)

        resolved = ResolvedScene(
            scene=scene,
            assets_ready=False,
            pending_generations=PendingGenerations(
                background=scene.background.action == "generate",
                portraits=pending_portraits,
            ),
        )
        resolved.assets_ready = self.assets_ready(resolved)
        return resolved

    def fallback_resolution(
        self,
        scene: ScenePayload,
        npc_descriptions: Mapping[str, str] | None = None,
        *,
        reason: str,
    ) -> ResolvedScene:
        descriptions = npc_descriptions or {}
        scene.background = BackgroundDirective(
            action="generate",
            location_name=scene.location,
            reason=reason,
        )
        for character in scene.characters:
            character.action = "generate"
            character.matched_asset_id = None
            character.description = descriptions.get(character.name) or character.description
        return ResolvedScene(
            scene=scene,
            assets_ready=False,
            pending_generations=PendingGenerations(
                background=True,
                portraits=[character.name for character in scene.characters],
            ),
            warnings=[reason],
        )

    @staticmethod
    def assets_ready(resolved: ResolvedScene) -> bool:
        scene = resolved.scene
        return (
            scene.background.action == "use"
            and all(character.action == "use" for character in scene.characters)
            and not resolved.pending_generations.portraits
        )

    async def wait_for_assets(
        self,
        resolved: ResolvedScene,
        timeout_seconds: float | None = None,
    ) -> ResolvedScene:
        """Poll the catalog until every pending asset is ready or time runs out.

        Returns the same ``resolved`` object, updated in place. Running out
        of time is not an error; whatever became ready is kept.
        """
        if resolved.assets_ready:
            self._logger.debug("WAIT skipped, all assets ready")
            return resolved

        timeout = self._config.asset_wait_timeout_seconds if timeout_seconds is None else timeout_seconds
        poll_interval = self._config.poll_interval_seconds
        started = self._clock()
        polls = 0

        while True:
            remaining = timeout - (self._clock() - started)
            if remaining <= 0:
                break
            await self._sleep(min(poll_interval, remaining))
            polls += 1

            self._cache.invalidate_cache()
            try:
                catalog = await self.read_catalog()
            except AssetResolutionError as exc:
                self._logger.warning("WAIT catalog read failed poll=%s: %s", polls, exc)
                continue

            self._reconcile(resolved, catalog)
            if resolved.assets_ready:
                self._logger.info("WAIT all assets ready polls=%s", polls)
                return resolved

        self._logger.warning(
            "WAIT timed out after %.1fs polls=%s pending_background=%s pending_portraits=%s",
            timeout,
            polls,
            resolved.pending_generations.background,
            resolved.pending_generations.portraits,
        )
        resolved.assets_ready = self.assets_ready(resolved)
        return resolved

    def _reconcile(self, resolved: ResolvedScene, catalog: AssetCatalog) -> None:
        scene = resolved.scene
        background = scene.background
        if background.action == "generate":
            asset, confidence = self.find_background(background.location_name or scene.location, catalog)
            if asset is not None and asset.is_ready:
                background.action = "use"
                background.asset_id = asset.id
                background.confidence = confidence
                background.reason = "Generated background became ready"
                self._logger.info("WAIT background ready asset_id=%s (%s)", asset.id, asset.location_name)

        for character in scene.characters:
            if character.action != "generate":
                continue
            asset, confidence = self.find_portrait(character.name, character.expression, catalog)
            if asset is not None and asset.is_ready:
                character.action = "use"
                character.matched_asset_id = asset.id
                character.confidence = confidence
                self._logger.info("WAIT portrait ready %s asset_id=%s", character.name, asset.id)

        resolved.pending_generations = PendingGenerations(
            background=background.action != "use",
            portraits=[character.name for character in scene.characters if character.action != "use"],
        )
        resolved.assets_ready = self.assets_ready(resolved)
