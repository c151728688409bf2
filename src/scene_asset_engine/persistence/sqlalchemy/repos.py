from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .models import BackgroundScene, CharacterPortrait


class BackgroundSceneRepo:
    def __init__(self, session: Session):
        self.session = session

    def list_all(self) -> list[BackgroundScene]:
        stmt = select(BackgroundScene).order_by(BackgroundScene.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def add(
        self,
        location_name: str,
        generation_status: str = "pending",
        image_url: str | None = None,
        prompt: str | None = None,
    ) -> BackgroundScene:
        row = BackgroundScene(
            location_name=location_name,
            generation_status=generation_status,
            image_url=image_url,
            prompt=prompt,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def mark_status(self, background_id: int, status: str, image_url: str | None = None) -> bool:
        values: dict[str, object] = {"generation_status": status, "updated_at": datetime.utcnow()}
        if image_url is not None:
            values["image_url"] = image_url
        stmt = update(BackgroundScene).where(BackgroundScene.id == background_id).values(**values)
        return self.session.execute(stmt).rowcount == 1


class CharacterPortraitRepo:
    def __init__(self, session: Session):
        self.session = session

    def list_all(self) -> list[CharacterPortrait]:
        stmt = select(CharacterPortrait).order_by(CharacterPortrait.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def add(
        self,
        character_name: str,
        expression: str = "neutral",
        generation_status: str = "pending",
        image_url: str | None = None,
        appearance_signature: str | None = None,
    ) -> CharacterPortrait:
        row = CharacterPortrait(
            character_name=character_name,
            expression=expression,
            generation_status=generation_status,
            image_url=image_url,
            appearance_signature=appearance_signature,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def mark_status(self, portrait_id: int, status: str, image_url: str | None = None) -> bool:
        values: dict[str, object] = {"generation_status": status, "updated_at": datetime.utcnow()}
        if image_url is not None:
            values["image_url"] = image_url
        stmt = update(CharacterPortrait).where(CharacterPortrait.id == portrait_id).values(**values)
        return self.session.execute(stmt).rowcount == 1
