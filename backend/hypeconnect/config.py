"""
HypeConnect Configuration Module

Loads environment variables for the payments backend.
"""
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - The Paystack secret key both authenticates API calls and signs webhooks
    - Admin endpoints are disabled until ADMIN_API_TOKEN is set
    """

    # Paystack
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    app_url: str = "http://localhost:3000"

    # Settlement
    platform_fee_percent: int = 20

    # Admin surface
    admin_api_token: Optional[str] = None

    # Runtime
    environment: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Reconciliation job
    enable_scheduler: bool = True
    reconciliation_interval_hours: int = 24

    # Database
    database_url: str = "sqlite+aiosqlite:///./hypeconnect.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
