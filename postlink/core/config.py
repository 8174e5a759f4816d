from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "PostLink API"
    VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/v1"

    # Database (required)
    DATABASE_URL: str

    # JWT (required)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30

    # Telegram bot used for push notifications
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    FRONTEND_APP_URL: str = ""
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0
    NOTIFICATION_RETRIES: int = 1

    # Business rules
    MAX_ACTIVE_REQUESTS: int = 3
    DEFAULT_LINKS_BALANCE: int = 3

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_ORIGINS: str = "*"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def cors_origins(self) -> list[str]:
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


settings = Settings()
