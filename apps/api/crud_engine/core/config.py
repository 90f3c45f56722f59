from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Nexa CRUD Engine"
    app_env: str = "local"
    app_debug: bool = True
    api_port: int = 8000
    default_page_size: int = 50
    search_debounce_ms: int = 300
    realtime_debounce_ms: int = 1000
    metrics_enabled: bool = False
    otel_enabled: bool = False
    sample_catalog_enabled: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
