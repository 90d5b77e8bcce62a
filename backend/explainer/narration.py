from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .config import Settings
from .errors import NarrationError, ProviderNotConfiguredError
from .schemas import VoiceSettings

logger = logging.getLogger(__name__)

DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_MODEL_ID = "eleven_multilingual_v2"
DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"
AUDIO_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class NarrationOptions:
    voice_id: str = DEFAULT_VOICE_ID
    model_id: str = DEFAULT_MODEL_ID
    output_format: str = DEFAULT_OUTPUT_FORMAT
    voice_settings: VoiceSettings = field(default_factory=VoiceSettings)


def narration_filename(index: int) -> str:
    return f"beat_{index:03d}.mp3"


def estimate_duration(text: str) -> float:
    words = len(text.split())
    return max(5.0, min(30.0, words * 0.3))


class NarrationClient:
    """Thin ElevenLabs text-to-speech client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.elevenlabs.io",
        timeout_sec: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_sec)
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "NarrationClient":
        return cls(
            settings.elevenlabs_api_key,
            base_url=settings.elevenlabs_base_url,
            timeout_sec=settings.elevenlabs_timeout_sec,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> httpx.Client:
        if not self._api_key:
            raise ProviderNotConfiguredError("ElevenLabs API key not configured")
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self._timeout,
                headers={"xi-api-key": self._api_key},
                transport=self._transport,
            )
        return self._client

    def synthesize(self, text: str, options: Optional[NarrationOptions] = None) -> bytes:
        options = options or NarrationOptions()
        client = self.client
        logger.info("Synthesizing %d chars with voice %s", len(text), options.voice_id)
        try:
            response = client.post(
                f"/v1/text-to-speech/{options.voice_id}",
                params={"output_format": options.output_format},
                json={
                    "text": text,
                    "model_id": options.model_id,
                    "voice_settings": options.voice_settings.model_dump(exclude_none=True),
                },
                headers={"Accept": AUDIO_CONTENT_TYPE},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NarrationError(
                f"Failed to generate audio: HTTP {exc.response.status_code} {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NarrationError(f"Failed to generate audio: {exc}") from exc

        audio = response.content
        if not audio:
            raise NarrationError("Failed to generate audio: empty response body")
        return audio

    def list_voices(self) -> list[dict[str, Any]]:
        client = self.client
        try:
            response = client.get("/v1/voices")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise NarrationError(f"Failed to fetch voices: {exc}") from exc
        voices = payload.get("voices") if isinstance(payload, dict) else None
        if not isinstance(voices, list):
            return []
        logger.info("Found %d available voices", len(voices))
        return voices

    def check_connection(self) -> bool:
        if not self.configured:
            logger.warning("ElevenLabs API key not configured")
            return False
        try:
            return len(self.list_voices()) > 0
        except NarrationError as exc:
            logger.error("ElevenLabs connection test failed: %s", exc)
            return False

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
