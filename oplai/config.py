"""Application configuration: reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


_SECRET_FIELDS = (
    "supabase_url",
    "supabase_key",
    "supabase_service_key",
    "llm_gateway_key",
    "openai_api_key",
    "anthropic_api_key",
    "google_client_id",
    "google_client_secret",
)


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""

    llm_gateway_url: str = "https://ai.gateway.lovable.dev/v1"
    llm_gateway_key: str = ""
    llm_gateway_model: str = "google/gemini-2.5-flash"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    default_llm_provider: str = "gateway"

    google_client_id: str = ""
    google_client_secret: str = ""

    nats_url: str = "nats://localhost:4222"
    port: int = 8400
    log_level: str = "INFO"

    draft_store_path: str = "~/.oplai/drafts.json"
    presence_display_limit: int = 5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        for name in _SECRET_FIELDS:
            if secret := _read_secret(name):
                setattr(self, name, secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
