# voice_relay/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Tuple


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(s.strip() for s in (raw or "").split(",") if s.strip())


class Settings(BaseSettings):
    ENV: str = "dev"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = ""            # comma-separated; empty = permissive CORS

    # transcription provider (OpenAI Whisper)
    OPENAI_KEY: Optional[str] = None
    TRANSCRIPTION_URL: str = "https://api.openai.com/v1/audio/transcriptions"
    TRANSCRIPTION_MODEL: str = "whisper-1"
    TRANSCRIPTION_TIMEOUT: float = 120.0
    TRANSCRIPTION_FIELDS: str = "language,temperature,response_format"
    DEFAULT_FILENAME: str = "recording.webm"

    # ingress pipe
    PIPE_MAX_CHUNKS: int = 8
    MAX_FIELD_BYTES: int = 64 * 1024
    REJECT_EXTRA_FILES: bool = False

    # text evaluation provider (Gemini)
    GEMINI_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT: float = 60.0

    # pydantic v2 settings
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",   # ignore unknown env vars instead of raising errors
        frozen=True,      # read once at startup, never mutated afterwards
    )

    @property
    def allowed_origins(self) -> Tuple[str, ...]:
        return _split_csv(self.ALLOWED_ORIGINS)

    @property
    def forwarded_fields(self) -> Tuple[str, ...]:
        return _split_csv(self.TRANSCRIPTION_FIELDS)


settings = Settings()
