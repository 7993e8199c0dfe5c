from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase Postgres (bookings ledger). Without it the in-memory ledger is used.
    SUPABASE_DB_URL: str | None = None

    # =================================================================
    # SCHEDULE DEFAULTS - used when the remote config source is unavailable
    # =================================================================
    BOOKING_TIME_ZONE: str = "Europe/Lisbon"
    WORKING_DAYS: str = "MON-FRI"
    WORKING_HOURS: str = "09:00-17:00"
    BOOKING_SLOT_MINUTES: int = 60
    MIN_ADVANCE_HOURS: int = 0
    MAX_ADVANCE_DAYS: int = 365
    CANCELLATION_HOURS: int = 24
    SCHEDULE_CACHE_TTL_SECONDS: float = 300.0  # 5 minutes

    # Vercel Edge Config connection string (https://edge-config.vercel.com/<id>?token=<token>)
    EDGE_CONFIG: str | None = None
    EDGE_CONFIG_ITEM_KEY: str = "app-config"

    # Google Calendar settings
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    GOOGLE_CALENDAR_ID: str = "primary"
    CALENDAR_FREEBUSY_TIMEOUT_SECONDS: float = 15.0

    # Notification webhook (Formspree form id)
    FORMSPREE_ID: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS - Simple and configurable
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def calendar_configured(self) -> bool:
        """Google free/busy needs the OAuth client pair plus a stored refresh token."""
        return bool(
            self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET and self.GOOGLE_REFRESH_TOKEN
        )

    def database_configured(self) -> bool:
        return bool(self.SUPABASE_DB_URL)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update(
                {
                    "min_size": 1,
                    "max_size": 4,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
