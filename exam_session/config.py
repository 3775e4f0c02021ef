from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings from environment variables (EXAM_ prefix)"""

    model_config = SettingsConfigDict(
        env_prefix="EXAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    log_level: str = "INFO"
    log_file: str | None = None
    strict_invariants: bool = False

    # Backend API
    api_base_url: str = "http://localhost:3000/api"
    api_token: str | None = None
    request_timeout: float = 15.0
    max_retries: int = 3
    retry_backoff: float = 1.0

    # Scheduling
    countdown_interval: float = 1.0
    autosave_interval: float = 30.0
    autosave_timeout: float = 5.0


# Global settings instance
settings = Settings()
