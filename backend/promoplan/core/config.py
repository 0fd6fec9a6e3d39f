from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    APP_NAME: str = "promoplan"
    version: str = "0.1.0"
    APP_DATA_PATH: str = "/tmp/promoplan"
    APP_DATABASE_DSN: str = "sqlite:////tmp/promoplan.db"
    SQLITE_BUSY_TIMEOUT: float = 30.0
    REDIS_URL: str = "redis://localhost:6379"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Subscription periods
    TRIAL_PERIOD_DAYS: int = 7
    PRO_PERIOD_MONTHS: int = 1

    # Coupon code generation
    COUPON_CODE_PREFIX: str = "UPSC"

    # Minutes of the hour at which the expiry sweep runs
    CLEANUP_CRON_MINUTES: set[int] = {0}


settings = Settings()
