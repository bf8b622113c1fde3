# ABOUTME: Runtime configuration loaded from the environment and an optional .env file.
# ABOUTME: Holds provider credentials, cache windows, and historical chunking parameters.

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings. Every field can be overridden by the upper-cased environment variable.

    Empty variables are ignored, so DATABASE_URL="" leaves persistence off.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_ignore_empty=True)

    openweather_api_key: str | None = None
    database_url: str | None = None

    report_cache_ttl_hours: float = 6.0
    hot_cache_ttl_seconds: float = 300.0
    hot_cache_max_entries: int = 1024
    report_cache_max_entries: int = 256

    # NASA POWER lags several days behind real time; asking for recent dates returns 422.
    historical_lag_days: int = 10
    historical_lookback_days: int = 365
    historical_chunk_days: int = 15
    historical_batch_size: int = 2
    historical_batch_delay_seconds: float = 1.5
    historical_max_records: int = 366
    historical_timeout_seconds: float = 15.0

    seasonal_months: int = 6
    seasonal_timeout_seconds: float = 30.0
    current_timeout_seconds: float = 10.0

    log_level: str = "INFO"
