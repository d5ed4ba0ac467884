from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Grumming API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS (e.g. https://grumming.com,https://admin.grumming.com). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "notifications@grumming.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    CLIENT_BASE_URL: str = "https://grumming.com"
    SUPPORT_EMAIL: str = "support@grumming.com"

    # Razorpay (Basic auth REST API + HMAC-signed checkout callbacks)
    RAZORPAY_API_BASE: str = "https://api.razorpay.com/v1"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""  # falls back to RAZORPAY_KEY_SECRET when empty
    RAZORPAY_CURRENCY: str = "INR"

    # Platform commission on the service price only; penalties are platform revenue.
    PLATFORM_FEE_PERCENT: int = 8
    REFUND_ESTIMATED_DAYS: str = "5-7 business days"

    # A booking left in pending_payment longer than this is reconciled by the worker.
    STALE_ORDER_MINUTES: int = 15

    # Paid wallet top-up bounds, rupees
    WALLET_TOPUP_MIN: int = 50
    WALLET_TOPUP_MAX: int = 10000

    # SMS: Twilio first, Fast2SMS fallback
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    SMS_DEFAULT_COUNTRY_CODE: str = "+91"
    FAST2SMS_API_KEY: str = ""


settings = Settings()
