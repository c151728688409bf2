from __future__ import annotations

import asyncio

import pytest

from scene_asset_engine.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from scene_asset_engine.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
        await asyncio.sleep(0)


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return build_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def counting_uow_factory(session_factory):
    calls = {"n": 0}

    def _factory():
        calls["n"] += 1
        return SQLAlchemyUnitOfWork(session_factory)

    _factory.calls = calls
    return _factory


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def seed_assets(uow_factory):
    with uow_factory() as uow:
        great_hall = uow.backgrounds.add("Great Hall", generation_status="ready", image_url="/assets/bg/great-hall.png")
        potions = uow.backgrounds.add("Potions Classroom", generation_status="ready", image_url="/assets/bg/potions.png")
        library = uow.backgrounds.add("Hogwarts Library", generation_status="generating")
        mcgonagall = uow.portraits.add(
            "Professor McGonagall",
            expression="neutral",
            generation_status="ready",
            image_url="/assets/portraits/mcgonagall-neutral.png",
            appearance_signature="a1b2c3",
        )
        snape = uow.portraits.add("Severus Snape", expression="angry", generation_status="pending")
        uow.commit()
        return {
            "great_hall": great_hall.id,
            "potions": potions.id,
            "library": library.id,
            "mcgonagall": mcgonagall.id,
            "snape": snape.id,
        }
