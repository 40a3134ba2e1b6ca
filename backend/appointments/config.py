# backend/appointments/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./appointments.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # Best-effort calendar resync before slot lookup
    calendar_sync_timeout_seconds: float = 5.0

    # Google Calendar OAuth client (token exchange happens elsewhere)
    google_client_id: str = ""
    google_client_secret: str = ""

    # Base URL for the booking confirmation link sent to customers
    magic_link_base_url: str = "http://localhost:3000/booking/confirm"

    availability_cache_ttl_seconds: int = 3600

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite paths are resolved against the repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url

    @property
    def google_sync_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


settings = Settings()
