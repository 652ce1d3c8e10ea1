from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./moderation.db"
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    APP_NAME: str = "Moderation Core API"
    CORS_ORIGINS: str = "http://localhost:3000"
    SQL_ECHO: bool = False

    # Rate limits (sliding windows)
    REPORT_RATE_LIMIT: int = 10
    REPORT_RATE_WINDOW_SECONDS: int = 24 * 60 * 60
    MODERATION_ACTION_RATE_LIMIT: int = 100
    MODERATION_ACTION_RATE_WINDOW_SECONDS: int = 60 * 60

    # Free-text limits
    MAX_DESCRIPTION_LENGTH: int = 1000
    MAX_REASON_LENGTH: int = 1000
    MAX_INTERNAL_NOTES_LENGTH: int = 5000
    MAX_NOTIFICATION_MESSAGE_LENGTH: int = 2000

    # Reports
    DUPLICATE_REPORT_WINDOW_HOURS: int = 24
    HIGH_PRIORITY_NOTIFY_THRESHOLD: int = 2  # P1/P2 reports page every moderator
    RECENTLY_REVERSED_DAYS: int = 7

    # Expiration worker
    ENABLE_EXPIRATION_WORKER: bool = False
    EXPIRATION_INTERVAL_SECONDS: int = 60 * 60

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
