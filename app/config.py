"""Application configuration using Pydantic Settings"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    app_name: str = "A2Z Bookshop API"
    debug: bool = False

    # Database
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "a2zbookshop"
    mongodb_transactions: bool = False  # requires a replica set

    # Security
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Store
    store_name: str = "A2Z Bookshop"
    frontend_url: str = "http://localhost:5173"
    currency: str = "USD"
    tax_rate: Decimal = Decimal("0")
    default_shipping_cost: Decimal = Decimal("0")
    return_window_days: int = 30

    # Payments
    payment_timeout_seconds: float = 30.0
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_base_url: str = "https://api-m.sandbox.paypal.com"
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    stripe_secret_key: Optional[str] = None

    # Email
    email_enabled: bool = True
    smtp_host: str = "smtp-relay.brevo.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from: str = "orders@a2zbookshop.com"
    admin_email: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
