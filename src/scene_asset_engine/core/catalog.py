from __future__ import annotations

import logging
import time
from types import MappingProxyType
from typing import Callable, Mapping

from ..persistence.interfaces import AssetUnitOfWork
from .config import AssetPipelineConfig
from .types import AssetCatalog, BackgroundAsset, PortraitAsset


class AssetCatalogCache:
    """Time-bounded snapshot of every background and portrait in the store.

    The snapshot is rebuilt off to the side and swapped in with a single
    assignment, so concurrent readers see either the old catalog or the new
    one. Concurrent refreshes are not serialized; the last one wins.
    """

    def __init__(
        self,
        uow_factory: Callable[[], AssetUnitOfWork],
        *,
        config: AssetPipelineConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._config = config or AssetPipelineConfig()
        self._clock = clock or time.monotonic
        self._logger = logger or logging.getLogger(__name__)
        self._snapshot: AssetCatalog | None = None
        self._captured_at: float | None = None

    @property
    def snapshot(self) -> AssetCatalog | None:
        return self._snapshot

    async def get_catalog(self, extra_descriptions: Mapping[str, str] | None = None) -> AssetCatalog:
        now = self._clock()
        snapshot = self._snapshot
        captured_at = self._captured_at
        if (
            snapshot is not None
            and captured_at is not None
            and (now - captured_at) < self._config.catalog_ttl_seconds
        ):
            return snapshot.with_descriptions(extra_descriptions)

        snapshot = self._load(now)
        self._snapshot = snapshot
        self._captured_at = now
        return snapshot.with_descriptions(extra_descriptions)

    def invalidate_cache(self) -> None:
        self._snapshot = None
        self._captured_at = None
        self._logger.debug("CATALOG INVALIDATED")

    def _load(self, now: float) -> AssetCatalog:
        self._logger.info("CATALOG REFRESH starting")
        with self._uow_factory() as uow:
            background_rows = uow.backgrounds.list_all()
            portrait_rows = uow.portraits.list_all()
            backgrounds = tuple(
                BackgroundAsset(
                    id=row.id,
                    location_name=row.location_name,
                    image_url=row.image_url,
                    status=row.generation_status or "pending",
                )
                for row in background_rows
            )
            portraits = tuple(
                PortraitAsset(
                    id=row.id,
                    character_name=row.character_name,
                    expression=row.expression or "neutral",
                    image_url=row.image_url,
                    status=row.generation_status or "pending",
                    appearance_signature=row.appearance_signature,
                )
                for row in portrait_rows
            )

        self._logger.info(
            "CATALOG REFRESH backgrounds=%s portraits=%s",
            len(backgrounds),
            len(portraits),
        )
        return AssetCatalog(
            backgrounds=backgrounds,
            portraits=portraits,
            npc_descriptions=MappingProxyType({}),
            captured_at=now,
        )
