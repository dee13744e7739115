from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    # Any single data-store call slower than this is treated as a failure
    store_timeout_seconds: float = 5.0

    # CORS (public booking surface is open to any origin)
    cors_origins: str = "*"

    # Slot/appointment business rules
    slot_step_minutes: int = 30
    max_advance_months: int = 6
    client_name_min_length: int = 2
    client_name_max_length: int = 100
    client_email_max_length: int = 255
    client_phone_max_length: int = 20
    client_notes_max_length: int = 500

    # Admission gate for anonymous traffic
    rate_limit_max_attempts: int = 5
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = ""
    # Proxies in front of the app that append to X-Forwarded-For; 0 ignores the header
    forwarded_trusted_hops: int = 1

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
