from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: Literal["dev", "test", "production"] = "dev"
    port: int = 3001

    database_url: str = "sqlite:///./data/receipts.db"

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    extract_timeout_seconds: float = 60.0

    cors_origins: list[str] = ["*"]

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path("./data/captures")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "site-receipts"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    max_upload_bytes: int = 50 * 1024 * 1024
    capture_ttl_hours: float = 24.0
    default_location: str = "Field Office A"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
