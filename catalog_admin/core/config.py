from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Catalog Taxonomy API"
    app_env: str = "dev"
    database_url: str = "sqlite+aiosqlite:///./catalog_admin.db"
    cors_allow_origins: str = "http://localhost:3000,http://localhost:3001"
    upload_dir: str = "./uploads"

    # Console side
    api_base_url: str = "http://localhost:5000"
    api_token: str | None = None
    asset_base_url: str = "http://localhost:5000"
    request_timeout_seconds: float = 30.0
    taxonomy_backend: Literal["http", "memory"] = "http"

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def cors_origins(self) -> list[str]:
        return [x.strip() for x in self.cors_allow_origins.split(",") if x.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
