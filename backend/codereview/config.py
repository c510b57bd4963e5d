from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./data/reviewer.db"

    # App settings
    app_name: str = "AI Code Reviewer"
    debug: bool = False
    log_level: str = "INFO"

    # AI provider defaults (overridden by the active provider row in the database)
    ai_provider: str = "openrouter"
    ai_api_key: str = ""
    ai_base_url: str = "https://openrouter.ai/api/v1"
    ai_model: str = "anthropic/claude-3.5-sonnet"
    ai_fallback_model: Optional[str] = "openai/gpt-4o-mini"
    ai_timeout_seconds: float = 60.0
    ai_temperature: float = 0.3
    ai_max_tokens: int = 1500

    # Analysis cache
    cache_sliding_minutes: int = 30
    cache_absolute_minutes: int = 60
    cache_size_limit: int = 1024

    # Content extraction
    max_uncommitted_diff_bytes: int = 204800
    max_diff_bytes: int = 102400
    git_timeout_seconds: float = 30.0

    # Hard defaults for values neither the request nor the stored preferences provide
    default_repository_path: str = "."
    default_documents_folder: str = "./Documents"
    default_language: str = "NET"

    # Push channel
    progress_queue_size: int = 100

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()
