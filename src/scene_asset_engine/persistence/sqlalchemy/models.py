from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ...core.types import ASSET_STATUSES
from .base import Base, TimestampMixin

_STATUS_CHECK = "generation_status IN (" + ",".join(f"'{status}'" for status in ASSET_STATUSES) + ")"


class BackgroundScene(TimestampMixin, Base):
    __tablename__ = "sae_background_scenes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_name: Mapped[str] = mapped_column(String(200), nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_status: Mapped[str | None] = mapped_column(String(16), nullable=True, default="pending")
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="background_status_valid"),
    )


Index("ix_sae_background_location", BackgroundScene.location_name)


class CharacterPortrait(TimestampMixin, Base):
    __tablename__ = "sae_character_portraits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(200), nullable=False)
    expression: Mapped[str | None] = mapped_column(String(32), nullable=True, default="neutral")
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_status: Mapped[str | None] = mapped_column(String(16), nullable=True, default="pending")
    appearance_signature: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="portrait_status_valid"),
    )


Index("ix_sae_portrait_character_expression", CharacterPortrait.character_name, CharacterPortrait.expression)
