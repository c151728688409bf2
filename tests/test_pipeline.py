from __future__ import annotations

import asyncio
import json

import pytest

from scene_asset_engine.core.audio import NarrationSynthesizer
from scene_asset_engine.core.catalog import AssetCatalogCache
from scene_asset_engine.core.config import AssetPipelineConfig
from scene_asset_engine.core.dispatch import GenerationDispatcher
from scene_asset_engine.core.errors import FatalGenerationError
from scene_asset_engine.core.extraction import SceneExtractor
from scene_asset_engine.core.pipeline import CoordinatedPipeline
from scene_asset_engine.core.resolver import AssetResolver
from scene_asset_engine.core.types import PipelineContext

NARRATIVE = (
    "The Great Hall glitters beneath a thousand floating candles.\n\n"
    "Professor McGonagall raises an eyebrow as you approach the staff table.\n\n"
    "1. Ask about the missing first-year\n"
    "2. Return to your seat"
)


class StubNarrator:
    def __init__(self, chunks: list[str] | None = None, error: Exception | None = None):
        self.chunks = chunks if chunks is not None else [NARRATIVE[:40], NARRATIVE[40:]]
        self.error = error
        self.messages = None

    async def stream_narrative(self, messages):
        self.messages = messages
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class StubCompletion:
    def __init__(self, payload: dict | None = None, error: Exception | None = None):
        self.payload = payload
        self.error = error

    async def complete(self, system_prompt, prompt, *, temperature=0.1, max_tokens=2048):
        if self.error is not None:
            raise self.error
        return json.dumps(self.payload)


class RecordingTrigger:
    def __init__(self):
        self.backgrounds: list[str] = []
        self.portraits: list[tuple[str, str, str | None]] = []

    async def request_background(self, location_name):
        self.backgrounds.append(location_name)

    async def request_portrait(self, character_name, expression, description=None):
        self.portraits.append((character_name, expression, description))


class StubSpeech:
    def __init__(self, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.error = error
        self.gate = gate

    async def synthesize(self, text):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        yield b"\x00\x00" * 64


def scene_payload(location: str, characters: list[dict]) -> dict:
    return {
        "location": location,
        "characters": characters,
        "choices": [{"text": "Ask about the missing first-year"}, {"text": "Return to your seat"}],
        "narratorMood": "mysterious",
        "confidence": 0.9,
    }


def build_pipeline(uow_factory, fake_clock, *, narrator=None, completion=None, speech=None, trigger=None):
    config = AssetPipelineConfig()
    cache = AssetCatalogCache(uow_factory, config=config, clock=fake_clock)
    resolver = AssetResolver(cache, config=config, clock=fake_clock, sleep=fake_clock.sleep)
    dispatcher = GenerationDispatcher(trigger or RecordingTrigger(), config=config, clock=fake_clock)
    pipeline = CoordinatedPipeline(
        narrator or StubNarrator(),
        SceneExtractor(completion or StubCompletion(scene_payload("Great Hall", [])), config=config),
        resolver,
        dispatcher,
        NarrationSynthesizer(speech or StubSpeech(), config=config),
        config=config,
        clock=fake_clock,
    )
    return pipeline, dispatcher


def make_context(**overrides) -> PipelineContext:
    values = dict(
        conversation_id=7,
        game_state={"location": "Great Hall", "gameTime": "Halloween, 7:00 PM"},
        story_arc={"currentChapterIndex": 1, "chapters": [{"title": "The Troll"}, {"title": "The Mirror"}]},
        chat_messages=[{"role": "user", "content": "I walk up to the staff table."}],
        npc_descriptions={"Luna Lovegood": "dreamy girl with radish earrings"},
    )
    values.update(overrides)
    return PipelineContext(**values)


def test_ready_assets_are_reused_without_waiting(uow_factory, seed_assets, fake_clock):
    async def run_test():
        trigger = RecordingTrigger()
        completion = StubCompletion(
            scene_payload("The Great Hall", [{"name": "Professor McGonagall", "expression": "neutral"}])
        )
        pipeline, dispatcher = build_pipeline(uow_factory, fake_clock, completion=completion, trigger=trigger)

        response = await pipeline.run(make_context())
        await dispatcher.drain()

        resolved = response.scene
        assert resolved.assets_ready is True
        assert resolved.scene.background.action == "use"
        assert resolved.scene.background.asset_id == seed_assets["great_hall"]
        assert resolved.scene.characters[0].matched_asset_id == seed_assets["mcgonagall"]
        assert resolved.scene.narrative_text == NARRATIVE
        assert response.tts_audio_url.startswith("data:audio/wav;base64,")
        assert response.errors == []
        assert response.generation_time_ms == 0
        assert fake_clock.sleeps == []
        assert trigger.backgrounds == []
        assert trigger.portraits == []

    asyncio.run(run_test())


@pytest.mark.parametrize(
    "narrator",
    [
        StubNarrator(chunks=[]),
        StubNarrator(chunks=["  Too short.  "]),
        StubNarrator(chunks=["The candles flicker"], error=ConnectionError("stream reset")),
    ],
)
def test_narrative_failure_is_fatal(uow_factory, fake_clock, narrator):
    async def run_test():
        pipeline, _ = build_pipeline(uow_factory, fake_clock, narrator=narrator)
        with pytest.raises(FatalGenerationError):
            await pipeline.run(make_context())

    asyncio.run(run_test())


def test_extraction_failure_degrades_to_fallback(uow_factory, seed_assets, fake_clock):
    async def run_test():
        pipeline, _ = build_pipeline(
            uow_factory,
            fake_clock,
            completion=StubCompletion(error=TimeoutError("extraction timed out")),
        )
        response = await pipeline.run(make_context())

        scene = response.scene.scene
        assert scene.narrative_text == NARRATIVE
        assert scene.location == "Great Hall"
        assert [c.text for c in scene.choices] == ["Ask about the missing first-year", "Return to your seat"]
        assert any(error.startswith("Scene extraction failed, using fallback") for error in response.errors)
        assert response.tts_audio_url is not None

    asyncio.run(run_test())


def test_unknown_location_is_reported(uow_factory, seed_assets, fake_clock):
    async def run_test():
        pipeline, dispatcher = build_pipeline(uow_factory, fake_clock, completion=StubCompletion({}))
        response = await pipeline.run(make_context(game_state=None))
        await dispatcher.drain()

        assert response.scene.scene.location == "The Undercroft"
        assert any("Scene location unknown" in error for error in response.errors)
        assert response.scene.pending_generations.background is True

    asyncio.run(run_test())


def test_missing_assets_trigger_generation_and_wait_with_audio(uow_factory, seed_assets, fake_clock):
    async def run_test():
        gate = asyncio.Event()
        # narration finishes only after the first asset poll
        fake_clock.on_sleep = lambda poll: gate.set()
        trigger = RecordingTrigger()
        completion = StubCompletion(
            scene_payload(
                "Quidditch Pitch",
                [
                    {"name": "Luna Lovegood", "expression": "happy"},
                    {"name": "Severus Snape", "expression": "angry"},
                ],
            )
        )
        pipeline, dispatcher = build_pipeline(
            uow_factory,
            fake_clock,
            completion=completion,
            speech=StubSpeech(gate=gate),
            trigger=trigger,
        )

        response = await asyncio.wait_for(pipeline.run(make_context()), timeout=5)
        await dispatcher.drain()

        assert response.tts_audio_url is not None
        assert response.scene.assets_ready is False
        assert response.scene.pending_generations.background is True
        assert response.scene.pending_generations.portraits == ["Luna Lovegood", "Severus Snape"]
        assert response.generation_time_ms == 15_000
        assert trigger.backgrounds == ["Quidditch Pitch"]
        assert trigger.portraits == [
            ("Luna Lovegood", "happy", "dreamy girl with radish earrings"),
            ("Severus Snape", "angry", None),
        ]

    asyncio.run(run_test())


def test_audio_failure_does_not_fail_the_turn(uow_factory, seed_assets, fake_clock):
    async def run_test():
        pipeline, _ = build_pipeline(uow_factory, fake_clock, speech=StubSpeech(error=ConnectionError("tts down")))
        response = await pipeline.run(make_context())

        assert response.tts_audio_url is None
        assert response.scene.assets_ready is True
        assert response.errors == []

    asyncio.run(run_test())


def test_previous_scene_context_reads_state_and_arc():
    previous = CoordinatedPipeline.previous_scene_context(make_context())

    assert previous.location == "Great Hall"
    assert previous.time == "Halloween, 7:00 PM"
    assert previous.trial_progress == {"currentTrial": 2, "trialName": "The Mirror"}
    assert previous.npc_descriptions == {"Luna Lovegood": "dreamy girl with radish earrings"}

    empty = CoordinatedPipeline.previous_scene_context(make_context(game_state=None, story_arc=None))
    assert empty.location is None
    assert empty.trial_progress == {}
