"""Configuration settings for Sunday."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./sunday.db")

    # Language model (schedule synthesis)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
    CORRECTION_HISTORY_MESSAGES: int = int(os.getenv("CORRECTION_HISTORY_MESSAGES", "4"))

    # Transcription
    TRANSCRIPTION_BACKEND: str = os.getenv("TRANSCRIPTION_BACKEND", "auto")  # auto, remote, local
    ELEVENLABS_API_KEY: str = os.getenv("ELEVENLABS_API_KEY", "")
    ELEVENLABS_MODEL_ID: str = os.getenv("ELEVENLABS_MODEL_ID", "scribe_v2")
    ELEVENLABS_URL: str = os.getenv("ELEVENLABS_URL", "https://api.elevenlabs.io/v1/speech-to-text")
    TRANSCRIPTION_TIMEOUT_SECONDS: int = int(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "120"))
    WHISPER_MODEL_SIZE: str = os.getenv("WHISPER_MODEL_SIZE", "base")
    TRANSCRIPTION_LANGUAGE: str = os.getenv("TRANSCRIPTION_LANGUAGE", "en")
    AUTO_TRANSCRIBE: bool = os.getenv("AUTO_TRANSCRIBE", "true").lower() == "true"

    # Capture
    CAPTURE_SAMPLE_RATE: int = int(os.getenv("CAPTURE_SAMPLE_RATE", "16000"))
    CAPTURE_CHANNELS: int = int(os.getenv("CAPTURE_CHANNELS", "1"))
    CAPTURE_DEVICE: str = os.getenv("CAPTURE_DEVICE", "")
    HINT_INTERVAL_MS: int = int(os.getenv("HINT_INTERVAL_MS", "100"))

    # Upload
    MAX_UPLOAD_SIZE_MB: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "100"))

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        warnings = []
        if not self.GEMINI_API_KEY:
            warnings.append("GEMINI_API_KEY is not set - schedule synthesis will fail until it is configured")
        if self.TRANSCRIPTION_BACKEND == "remote" and not self.ELEVENLABS_API_KEY:
            warnings.append("TRANSCRIPTION_BACKEND=remote but ELEVENLABS_API_KEY is not set")
        if self.TRANSCRIPTION_BACKEND not in ("auto", "remote", "local"):
            warnings.append(f"Unknown TRANSCRIPTION_BACKEND '{self.TRANSCRIPTION_BACKEND}' - falling back to auto")
        return warnings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
