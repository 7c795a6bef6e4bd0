from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Storage - no DATABASE_URL means the in-memory store is used
    DATABASE_URL: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # Partition used when the front end has no community id (DMs)
    DEFAULT_SCOPE_ID: str = "global"

    # Roblox profile lookup
    ROBLOX_COOKIE: str | None = None
    ROBLOX_USERS_API_URL: str = "https://users.roblox.com"
    ROBLOX_THUMBNAILS_API_URL: str = "https://thumbnails.roblox.com"
    PROFILE_REQUEST_TIMEOUT_SECONDS: float = 10.0
    PROFILE_MIN_REQUEST_INTERVAL_SECONDS: float = 1.0
    PROFILE_RATE_LIMIT_THRESHOLD: int = 3
    PROFILE_RATE_LIMIT_COOLDOWN_SECONDS: float = 30.0

    # Verification workflow
    VERIFICATION_MAX_ATTEMPTS: int = 3
    VERIFICATION_BACKOFF_BASE_SECONDS: float = 3.0
    VERIFICATION_ALLOW_FALLBACK: bool = True

    # Dashboard push updates
    BROADCAST_QUEUE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def use_database(self) -> bool:
        """True when a PostgreSQL URL is configured."""
        return bool(self.DATABASE_URL)

    def has_roblox_auth(self) -> bool:
        return bool(self.ROBLOX_COOKIE)

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
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
