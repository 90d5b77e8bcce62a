import json

import httpx
import pytest

from explainer.errors import NarrationError, ProviderNotConfiguredError
from explainer.narration import NarrationClient, NarrationOptions, estimate_duration, narration_filename
from explainer.schemas import VoiceSettings


def _client(handler) -> NarrationClient:
    return NarrationClient("test-key", base_url="https://tts.example", transport=httpx.MockTransport(handler))


def test_narration_filename_is_zero_padded() -> None:
    assert narration_filename(0) == "beat_000.mp3"
    assert narration_filename(7) == "beat_007.mp3"
    assert narration_filename(123) == "beat_123.mp3"


def test_estimate_duration_is_clamped() -> None:
    assert estimate_duration("short line") == 5.0
    assert estimate_duration(" ".join(["word"] * 50)) == pytest.approx(15.0)
    assert estimate_duration(" ".join(["word"] * 500)) == 30.0


def test_synthesize_posts_text_and_voice_settings() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ID3-bytes", headers={"Content-Type": "audio/mpeg"})

    options = NarrationOptions(voice_id="voice-1", voice_settings=VoiceSettings(style=None, speed=1.2))
    audio = _client(handler).synthesize("Hello there", options)

    assert audio == b"ID3-bytes"
    request = seen[0]
    assert request.url.path == "/v1/text-to-speech/voice-1"
    assert request.url.params["output_format"] == "mp3_44100_128"
    assert request.headers["xi-api-key"] == "test-key"
    assert request.headers["accept"] == "audio/mpeg"
    body = json.loads(request.content)
    assert body["text"] == "Hello there"
    assert body["model_id"] == "eleven_multilingual_v2"
    assert "style" not in body["voice_settings"]
    assert body["voice_settings"]["speed"] == 1.2


def test_http_error_becomes_narration_error() -> None:
    client = _client(lambda request: httpx.Response(429, text="quota exceeded"))
    with pytest.raises(NarrationError, match="HTTP 429 quota exceeded"):
        client.synthesize("Hello")


def test_empty_body_is_an_error() -> None:
    client = _client(lambda request: httpx.Response(200, content=b""))
    with pytest.raises(NarrationError, match="empty response body"):
        client.synthesize("Hello")


def test_transport_error_becomes_narration_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NarrationError, match="connection refused"):
        _client(handler).synthesize("Hello")


def test_check_connection_lists_voices() -> None:
    client = _client(lambda request: httpx.Response(200, json={"voices": [{"voice_id": "a"}]}))
    assert client.check_connection() is True
    failing = _client(lambda request: httpx.Response(401, json={"detail": "bad key"}))
    assert failing.check_connection() is False


def test_missing_key_is_not_configured() -> None:
    client = NarrationClient("")
    assert client.configured is False
    assert client.check_connection() is False
    with pytest.raises(ProviderNotConfiguredError, match="ElevenLabs API key not configured"):
        client.synthesize("Hello")
