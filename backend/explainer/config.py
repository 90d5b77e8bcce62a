from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _load_env() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    env_file = backend_dir / ".env"
    load_dotenv(env_file, override=False)


_load_env()


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _first_env(*names: str, default: str = "") -> str:
    # Both the CLOUDFLARE_R2_* and the short R2_* spellings are accepted.
    for name in names:
        value = os.getenv(name)
        if value:
            return value.strip()
    return default


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    allowed_origins: list[str]
    log_level: str
    r2_endpoint: str
    r2_access_key_id: str
    r2_secret_access_key: str
    r2_bucket: str
    r2_public_base_url: str
    presign_ttl_sec: int
    openai_api_key: str
    openai_plan_model: str
    openai_timeout_sec: float
    elevenlabs_api_key: str
    elevenlabs_base_url: str
    elevenlabs_timeout_sec: float
    default_voice_id: str
    narration_model_id: str
    narration_output_format: str
    narration_delay_sec: float
    auth_proxy_secret: str

    @property
    def storage_configured(self) -> bool:
        return bool(self.r2_endpoint and self.r2_access_key_id and self.r2_secret_access_key and self.r2_bucket)


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "Explainer Studio API"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./explainer.db"),
        allowed_origins=_split_csv(os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        r2_endpoint=_first_env("CLOUDFLARE_R2_ENDPOINT", "R2_ENDPOINT").rstrip("/"),
        r2_access_key_id=_first_env("CLOUDFLARE_R2_ACCESS_KEY_ID", "R2_ACCESS_KEY_ID"),
        r2_secret_access_key=_first_env("CLOUDFLARE_R2_SECRET_ACCESS_KEY", "R2_SECRET_ACCESS_KEY"),
        r2_bucket=_first_env("CLOUDFLARE_R2_BUCKET_NAME", "R2_BUCKET"),
        r2_public_base_url=os.getenv("R2_PUBLIC_BASE_URL", "").strip().rstrip("/"),
        presign_ttl_sec=max(60, int(os.getenv("PRESIGN_TTL_SEC", "3600"))),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_plan_model=os.getenv("OPENAI_PLAN_MODEL", "gpt-5-mini-2025-08-07").strip(),
        openai_timeout_sec=max(5.0, float(os.getenv("OPENAI_TIMEOUT_SEC", "120"))),
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", "").strip(),
        elevenlabs_base_url=os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io").strip().rstrip("/"),
        elevenlabs_timeout_sec=max(2.0, float(os.getenv("ELEVENLABS_TIMEOUT_SEC", "60"))),
        default_voice_id=os.getenv("ELEVENLABS_DEFAULT_VOICE_ID", "21m00Tcm4TlvDq8ikWAM").strip(),
        narration_model_id=os.getenv("NARRATION_MODEL_ID", "eleven_multilingual_v2").strip(),
        narration_output_format=os.getenv("NARRATION_OUTPUT_FORMAT", "mp3_44100_128").strip(),
        narration_delay_sec=max(0.0, float(os.getenv("NARRATION_DELAY_SEC", "0.5"))),
        auth_proxy_secret=os.getenv("AUTH_PROXY_SECRET", "").strip(),
    )
