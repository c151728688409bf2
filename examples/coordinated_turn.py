from __future__ import annotations

import asyncio
import json
import logging

from scene_asset_engine import (
    AssetCatalogCache,
    AssetPipelineConfig,
    AssetResolver,
    CoordinatedPipeline,
    GenerationDispatcher,
    NarrationSynthesizer,
    PipelineContext,
    SceneExtractor,
)
from scene_asset_engine.persistence.sqlalchemy import (
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)

NARRATIVE = """[LOCATION: Astronomy Tower]
Wind howls through the open arches of the Astronomy Tower.

Professor Sinistra lowers her telescope and studies you with narrowed eyes. [CHARACTER: Professor Sinistra|mysterious]

1. Ask what she has seen in the stars
2. Slip back down the spiral stair
"""


class DemoNarrator:
    async def stream_narrative(self, messages):
        for line in NARRATIVE.splitlines(keepends=True):
            await asyncio.sleep(0)
            yield line


class DemoCompletion:
    async def complete(self, system_prompt, prompt, *, temperature=0.1, max_tokens=2048):
        return json.dumps(
            {
                "location": "Astronomy Tower",
                "time": "Midnight",
                "characters": [
                    {"name": "Professor Sinistra", "position": "right", "expression": "mysterious", "speaking": False}
                ],
                "choices": [
                    {"text": "Ask what she has seen in the stars"},
                    {"text": "Slip back down the spiral stair"},
                ],
                "narratorMood": "mysterious",
                "confidence": 0.8,
            }
        )


class DemoSpeech:
    async def synthesize(self, text):
        # a quarter second of silence at 24 kHz
        yield b"\x00\x00" * 6000


class DemoGenerator:
    """Pretends to be the image service: finishes each request after a delay."""

    def __init__(self, uow_factory, delay: float = 0.5):
        self._uow_factory = uow_factory
        self._delay = delay

    async def request_background(self, location_name):
        with self._uow_factory() as uow:
            row = uow.backgrounds.add(location_name, generation_status="generating")
            uow.commit()
            row_id = row.id
        await asyncio.sleep(self._delay)
        with self._uow_factory() as uow:
            uow.backgrounds.mark_status(row_id, "ready", image_url=f"/assets/bg/{row_id}.png")
            uow.commit()

    async def request_portrait(self, character_name, expression, description=None):
        with self._uow_factory() as uow:
            row = uow.portraits.add(character_name, expression=expression, generation_status="generating")
            uow.commit()
            row_id = row.id
        await asyncio.sleep(self._delay)
        with self._uow_factory() as uow:
            uow.portraits.mark_status(row_id, "ready", image_url=f"/assets/portraits/{row_id}.png")
            uow.commit()


def make_uow_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _uow_factory


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
    config = AssetPipelineConfig(poll_interval_seconds=0.25, pipeline_asset_wait_seconds=3.0)
    uow_factory = make_uow_factory()

    cache = AssetCatalogCache(uow_factory, config=config)
    dispatcher = GenerationDispatcher(DemoGenerator(uow_factory), config=config)
    pipeline = CoordinatedPipeline(
        DemoNarrator(),
        SceneExtractor(DemoCompletion(), config=config),
        AssetResolver(cache, config=config),
        dispatcher,
        NarrationSynthesizer(DemoSpeech(), config=config),
        config=config,
    )

    response = await pipeline.run(
        PipelineContext(
            conversation_id=1,
            game_state={"location": "Gryffindor Common Room"},
            story_arc=None,
            chat_messages=[{"role": "user", "content": "I climb the Astronomy Tower."}],
        )
    )
    await dispatcher.drain()

    scene = response.scene.scene
    print("location:", scene.location)
    print("background:", scene.background.action, scene.background.asset_id)
    for character in scene.characters:
        print("portrait:", character.name, character.action, character.matched_asset_id)
    print("assets_ready:", response.scene.assets_ready)
    print("audio:", (response.tts_audio_url or "")[:40] + "...")
    print("errors:", response.errors)
    print("generation_time_ms:", response.generation_time_ms)


if __name__ == "__main__":
    asyncio.run(main())
