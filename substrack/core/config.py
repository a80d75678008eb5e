from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase configuration (merchant authentication)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_jwt_secret: str = os.getenv("SUPABASE_JWT_SECRET", "")

    # Database configuration (for SQLAlchemy - connects to Supabase PostgreSQL)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS and checkout redirects)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Subscriber access tokens (shared across merchants)
    access_token_secret: str = os.getenv("ACCESS_TOKEN_SECRET", "your-secret-key-change-this")
    access_token_ttl_days: int = int(os.getenv("ACCESS_TOKEN_TTL_DAYS", "90"))

    # Stripe webhook signature tolerance in seconds
    stripe_webhook_tolerance: int = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))

    # Transactional email (Resend)
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    email_from_address: str = os.getenv("EMAIL_FROM_ADDRESS", "onboarding@resend.dev")
    email_timeout: float = float(os.getenv("EMAIL_TIMEOUT", "10"))

    # Invoices
    logo_fetch_timeout: float = float(os.getenv("LOGO_FETCH_TIMEOUT", "5"))

    class Config:
        env_file = ".env"


settings = Settings()
