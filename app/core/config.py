from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
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

    # Session JWT (issued by the auth system, verified here)
    secret_key: str
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Google OAuth client used for calendar consent and token refresh
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    google_oauth_authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    google_oauth_token_url: str = "https://oauth2.googleapis.com/token"
    google_calendar_api_base: str = "https://www.googleapis.com/calendar/v3"
    google_calendar_scope: str = "https://www.googleapis.com/auth/calendar"
    calendar_id: str = "primary"
    provider_timeout_seconds: float = 10.0

    # Slot/booking business rules
    calendar_timezone: str = "America/New_York"
    slot_duration_minutes: int = 60
    business_start_hour: int = 9
    business_end_hour: int = 17  # exclusive, so last slot ends at 17:00
    availability_horizon_days: int = 14
    max_offered_slots: int = 5
    token_refresh_buffer_minutes: int = 5
    connect_state_expire_minutes: int = 10

    # Voice assistant function calls
    assistant_functions_url: str = "http://localhost:8000/api/v1/assistant/functions"
    assistant_shared_secret: str = ""

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def google_oauth_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)


settings = Settings()
