"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    evidence_bucket: str = "evidence"
    alert_backend_url: str = "http://localhost:5000"
    recording_duration_seconds: float = 25.0
    late_artifact_grace_seconds: float = 3.0
    upload_drain_timeout_seconds: float = 5.0
    default_evidence_duration_seconds: int = 25
    recordings_dir: str = "recordings"
    ffmpeg_binary: str = "ffmpeg"
    audio_input_format: str = "alsa"
    audio_input: str = "default"
    video_input_format: str = "v4l2"
    video_input: str = "/dev/video0"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
