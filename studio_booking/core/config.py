from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    BUSINESS_NAME: str = "PhotoStudio"
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"
    BUSINESS_OPEN_HOUR: int = 9
    BUSINESS_CLOSE_HOUR: int = 20
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    CURRENCY: str = "INR"
    HOLD_TTL_MINUTES: int = 15
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: float = 60.0

    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_WEBHOOK_SECRET: str | None = None
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    MOCK_GATEWAY_SECRET: str = "mock_secret"

    STORE_PROVIDER: str = "memory"  # "memory" | "json"
    DATA_DIR: str = "./data"
    # Both stores lock in-process only; uvicorn reads the same variable.
    WEB_CONCURRENCY: int = 1

    NOTIFY_WEBHOOK_URL: str | None = None
    ADMIN_API_TOKEN: str | None = None


settings = Settings()
