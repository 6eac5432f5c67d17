"""Pydantic Settings: loads configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    max_requests_per_second: float = 5.0
    max_concurrency: int = 3
    backoff_base_seconds: float = 1.0
    max_backoff_seconds: float = 60.0

    # Comma-separated; a per-request proxy overrides these.
    default_proxies: str = ""
    headless: bool = True

    log_level: str = "INFO"

    @property
    def proxy_list(self) -> list[str]:
        return [p.strip() for p in self.default_proxies.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
