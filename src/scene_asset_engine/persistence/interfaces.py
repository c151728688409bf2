from __future__ import annotations

from typing import Protocol


class BackgroundSceneRepo(Protocol):
    def list_all(self): ...
    def add(
        self,
        location_name: str,
        generation_status: str = "pending",
        image_url: str | None = None,
        prompt: str | None = None,
    ): ...
    def mark_status(self, background_id: int, status: str, image_url: str | None = None) -> bool: ...


class CharacterPortraitRepo(Protocol):
    def list_all(self): ...
    def add(
        self,
        character_name: str,
        expression: str = "neutral",
        generation_status: str = "pending",
        image_url: str | None = None,
        appearance_signature: str | None = None,
    ): ...
    def mark_status(self, portrait_id: int, status: str, image_url: str | None = None) -> bool: ...


class AssetUnitOfWork(Protocol):
    backgrounds: BackgroundSceneRepo
    portraits: CharacterPortraitRepo

    def __enter__(self) -> "AssetUnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
