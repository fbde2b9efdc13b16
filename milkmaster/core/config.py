"""Storefront Configuration"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    # Application
    app_name: str = "MilkMaster Storefront"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000

    # Backend API
    api_base_url: str = "http://localhost:5000"
    http_timeout: Optional[float] = None  # No timeout unless configured

    # Local storage (cart partitions, token, cached user record)
    storage_path: str = "data/local_storage.json"

    # Checkout
    store_name: str = "MilkMaster"
    currency_symbol: str = "Rs."
    otp_length: int = 6
    login_path: str = "/login"
    checkout_session_max_age_hours: int = 24  # Abandoned wizards are discarded after this

    # OTP mail relay
    mail_relay_url: str = "https://api.web3forms.com/submit"
    mail_relay_access_key: Optional[str] = None
    mail_relay_subject: str = "BankCard OTP"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def mail_relay_configured(self) -> bool:
        """Check if the OTP mail relay has an access key"""
        return bool(self.mail_relay_access_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
