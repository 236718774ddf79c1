from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Parking Reports API"
    debug: bool = False
    environment: str = "production"
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Reporting
    timezone: str = "UTC"
    default_window_days: int = 30
    insight_limit: int = 6
    trend_insight_limit: int = 5
    expiring_soon_days: int = 15
    default_shift_hours: float = 8.0
    currency_symbol: str = "$"

    # Upstream data source
    upstream_base_url: str = "http://localhost:3000"
    upstream_timeout_seconds: float = 10.0
    upstream_history_path: str = "/api/parking/history"
    upstream_subscriptions_path: str = "/api/abonos/list"
    upstream_shifts_path: str = "/api/turnos/gestion"
    upstream_facility_path: str = "/api/estacionamiento/config"
    upstream_hours_path: str = "/api/estacionamiento/horarios"
    upstream_spots_path: str = "/api/plazas"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
