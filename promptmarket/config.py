from decimal import Decimal
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "promptmarket"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # Full URL wins over the postgres_* parts (sqlite in tests)
    DATABASE_URL: Optional[str] = None

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Marketplace
    PLATFORM_FEE_PERCENT: Decimal = Decimal("15")
    CURRENCY: str = "usd"
    PENDING_PURCHASE_EXPIRY_DAYS: int = 7

    # Seller payouts
    PAYOUT_MINIMUM_AMOUNT: Decimal = Decimal("10.00")
    PAYOUT_SCHEDULE_DAYS: int = 7

    # Payments
    PAYMENT_PROVIDER: str = "stripe"  # stripe | razorpay
    PAYMENT_HTTP_TIMEOUT: int = 20
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_PUBLISHABLE_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None

    # Mail (Brevo)
    BREVO_API_KEY: Optional[str] = None
    MAIL_FROM: str = "no-reply@promptmarket.local"
    STORE_NAME: str = "PromptMarket"
    ADMIN_EMAILS: List[str] = []

    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def webhook_secrets(self) -> dict:
        return {
            "stripe": self.STRIPE_WEBHOOK_SECRET,
            "razorpay": self.RAZORPAY_WEBHOOK_SECRET,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
