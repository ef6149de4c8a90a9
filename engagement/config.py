from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres settings
    DATABASE_URL: str = "postgresql://localhost:5432/engagement"

    # Redis settings (presence store + pub/sub bus)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Auth settings
    AUTH_JWT_SECRET: str | None = None
    AUTH_JWKS_URL: str | None = None
    AUTH_AUDIENCE: str = "authenticated"

    # Scheduler trigger settings
    CRON_SECRET: str | None = None
    TRIGGER_IDENTITY_HEADER: str = "x-scheduler-trigger"
    TRIGGER_IDENTITY_VALUE: str | None = None

    # Email transport settings
    RESEND_API_KEY: str | None = None
    RESEND_WEBHOOK_SECRET: str | None = None
    EMAIL_FROM: str = "Liefde Voor Iedereen <noreply@liefdevooriedereen.nl>"
    APP_URL: str = "http://localhost:3000"
    UNSUBSCRIBE_SECRET: str | None = None
    UNSUBSCRIBE_TOKEN_DAYS: int = 30

    # Presence
    PRESENCE_ONLINE_THRESHOLD_SECONDS: int = 300
    PRESENCE_PERSIST_INTERVAL_SECONDS: int = 300

    # Notification stream
    NOTIFICATION_STREAM_INTERVAL_SECONDS: float = 30.0

    # Campaigns
    CAMPAIGN_MAX_RUN_SECONDS: float = 240.0
    CAMPAIGN_MAX_CONCURRENCY: int = 5
    CAMPAIGN_BATCH_LIMIT: int = 500
    EMAIL_MAX_PER_DAY: int = 2
    EMAIL_MAX_PER_WEEK: int = 7
    PLATFORM_TIMEZONE: str = "Europe/Amsterdam"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

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
            # Smaller pool for local development
            config.update(
                {
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
