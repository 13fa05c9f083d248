from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Bulk Post Publisher API"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False

    database_url: str = "sqlite:///./app.db"
    openai_api_key: str = ""
    default_text_model: str = "gpt-4o-mini"
    default_generation_instructions: str = (
        "You are a blog writer. Write an engaging, well-structured blog post in HTML "
        "based on the input data. Use headings and short paragraphs."
    )
    image_size: str = "1024x1024"
    models_file: str = "data/models.json"

    encryption_key: str = "aLxM0wHk0w0oVx3G9iYfn7lr5J2v3xH5cM8D6lQ1t2Q="

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    max_upload_size_mb: int = 10
    rate_limit_per_minute: int = 60
    auto_create_tables: bool = True

    cron_secret: str = ""
    tick_default_limit: int = 2
    tick_max_limit: int = 25
    tick_budget_seconds: float = 55.0
    tick_max_concurrency: int = 8
    tick_schedule_seconds: float = 60.0
    remote_timeout_seconds: float = 20.0
    claim_ttl_seconds: int = 300

    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = ""

    def get_celery_broker_url(self) -> str:
        return self.celery_broker_url

    def get_celery_result_backend(self) -> str:
        return self.celery_result_backend or self.celery_broker_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
