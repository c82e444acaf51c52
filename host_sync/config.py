from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Session service (outbound channel + presence)
    SESSION_BASE_URL: str = "http://localhost:5000"
    SESSION_ID: str = ""

    # Local player
    PLAYER_API_BASE_URL: str = "https://api.spotify.com/v1"
    PLAYER_POLL_INTERVAL_SECONDS: float = 1.0
    DEVICE_LABEL: str = "Host Sync"

    # Credentials
    TOKEN_PATH: str = "/data/tokens.json"
    PERSIST_ENABLED: bool = True
    TOKEN_REFRESH_INTERVAL_SECONDS: int = 1800  # 30m
    MAX_REFRESH_FAILURES: int = 3

    # Sync Logic
    SEEK_THRESHOLD_MS: int = 1000
    DEBOUNCE_WINDOW_MS: int = 400
    STOP_PUBLISH_TIMEOUT_SECONDS: float = 2.0
    PRESENCE_POLL_INTERVAL_SECONDS: int = 15

    # System
    LOG_LEVEL: str = "INFO"
    DRY_RUN: bool = False
    HTTP_SERVER_ENABLED: bool = False
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
