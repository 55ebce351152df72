"""
Ledger - Configuration
Environment-driven settings for the API, database, auth and chat backend.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "dev"  # dev | test | prod
    db_url: str = "sqlite+aiosqlite:///./ledger.db"
    jwt_secret: str
    jwt_expire_minutes: int = 30 * 24 * 60  # 30 days
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # Chat backend
    openai_api_key: str | None = None
    chat_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.7

    class Config:
        env_file = ".env"


settings = Settings()
