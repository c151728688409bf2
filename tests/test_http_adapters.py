from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from scene_asset_engine.adapters.http import HTTPGenerationTrigger, HTTPSpeechSynthesizer, OpenAICompatibleChat


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://game.test")


def test_generation_trigger_posts_expected_payloads():
    seen: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(202, json={"status": "generating"})

    async def run_test():
        async with make_client(handler) as client:
            trigger = HTTPGenerationTrigger(client)
            await trigger.request_background("Quidditch Pitch")
            await trigger.request_portrait("Luna Lovegood", "happy", "dreamy girl with radish earrings")
            await trigger.request_portrait("Severus Snape", "angry")

    asyncio.run(run_test())
    assert seen == [
        ("/api/vn-assets/backgrounds/generate", {"locationName": "Quidditch Pitch"}),
        (
            "/api/vn-assets/portraits/generate",
            {"characterName": "Luna Lovegood", "expression": "happy", "description": "dreamy girl with radish earrings"},
        ),
        ("/api/vn-assets/portraits/generate", {"characterName": "Severus Snape", "expression": "angry"}),
    ]


def test_generation_trigger_raises_on_error_status():
    async def run_test():
        async with make_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await HTTPGenerationTrigger(client).request_background("Owlery")

    asyncio.run(run_test())


def test_speech_synthesizer_streams_bytes():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tts/speak"
        assert json.loads(request.content) == {"text": "Welcome to Hogwarts."}
        return httpx.Response(200, content=b"\x01\x02\x03\x04")

    async def run_test():
        async with make_client(handler) as client:
            speech = HTTPSpeechSynthesizer(client)
            return b"".join([chunk async for chunk in speech.synthesize("Welcome to Hogwarts.")])

    assert asyncio.run(run_test()) == b"\x01\x02\x03\x04"


def test_chat_stream_yields_delta_content():
    events = [
        {"choices": [{"delta": {"role": "assistant"}}]},
        {"choices": [{"delta": {"content": "The torches "}}]},
        {"choices": [{"delta": {"content": "flicker."}}]},
    ]
    body = "".join(f"data: {json.dumps(event)}\n\n" for event in events)
    body += "data: {not json}\n\ndata: [DONE]\n\ndata: " + json.dumps(events[1]) + "\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert payload["stream"] is True
        assert payload["model"] == "narrator-large"
        return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})

    async def run_test():
        async with make_client(handler) as client:
            chat = OpenAICompatibleChat(client, model="narrator-large")
            return [chunk async for chunk in chat.stream_narrative([{"role": "user", "content": "look"}])]

    assert asyncio.run(run_test()) == ["The torches ", "flicker."]


def test_chat_complete_returns_message_content():
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": '{"location": "Owlery"}'}}]})

    async def run_test():
        async with make_client(handler) as client:
            chat = OpenAICompatibleChat(client, model="extractor-small")
            return await chat.complete("Return JSON only.", "Where are we?", temperature=0.1, max_tokens=512)

    assert asyncio.run(run_test()) == '{"location": "Owlery"}'
    assert requests[0]["messages"][0] == {"role": "system", "content": "Return JSON only."}
    assert requests[0]["max_tokens"] == 512
    assert "stream" not in requests[0]


def test_chat_complete_without_choices_returns_none():
    async def run_test():
        async with make_client(lambda request: httpx.Response(200, json={"choices": []})) as client:
            return await OpenAICompatibleChat(client, model="m").complete("", "hi")

    assert asyncio.run(run_test()) is None
