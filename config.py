# config.py
"""
Application settings.

All provider credentials and behaviour switches are read once from the
environment (``.env`` supported) into a ``Settings`` object which is then
passed explicitly to the provider registry, provider clients, notifier and
reconciliation engine.

Usage:
     from config import get_settings

     @app.get("/items")
     def get_items(settings: Settings = Depends(get_settings)):
          ...
"""
import os
from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


SUPPORTED_CURRENCIES = ("EUR", "USD", "SATS", "BTC", "CAD", "JPY", "GBP", "CHF", "RUB")
SUPPORTED_PROVIDERS = ("coinsnap", "btcpay")


def _env_bool(name: str, default: bool = False) -> bool:
     value = os.getenv(name)
     if value is None:
          return default
     return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
     """Runtime configuration for the payment service."""

     # Provider selection and form defaults
     payment_provider: str = "coinsnap"
     default_amount: float = 0
     default_currency: str = "USD"

     # Coinsnap
     coinsnap_api_key: str = ""
     coinsnap_store_id: str = ""
     coinsnap_api_base: str = "https://app.coinsnap.io"
     coinsnap_webhook_secret: str = ""

     # BTCPay Server
     btcpay_host: str = ""
     btcpay_api_key: str = ""
     btcpay_store_id: str = ""
     btcpay_webhook_secret: str = ""

     # Webhook / outbound HTTP behaviour
     disable_webhook_verification: bool = False
     provider_timeout: float = Field(default=20, gt=0)

     # Logging
     log_level: str = "INFO"
     log_file: Optional[str] = None
     log_file_max_bytes: int = 5 * 1024 * 1024
     log_file_backups: int = 5

     # Auth
     jwt_secret: Optional[str] = None
     jwt_algorithm: str = "HS256"
     form_token_ttl: int = 3600

     # Notification email (Brevo)
     brevo_api_key: Optional[str] = None
     notify_sender_email: str = "noreply@example.com"
     notify_sender_name: str = "Bitcoin Invoice Form"
     admin_email: Optional[str] = None

     # Database / HTTP
     database_url: Optional[str] = None
     cors_origins: List[str] = []


def build_database_url() -> str:
     """
     Resolve the SQLAlchemy URL.

     DATABASE_URL wins; otherwise an Azure SQL (MS SQL Server) URL is built
     from the DB_* variables using the pymssql driver.
     """
     url = os.getenv("DATABASE_URL")
     if url:
          return url

     safe_user = quote_plus(os.getenv("DB_USER") or "")
     safe_pass = quote_plus(os.getenv("DB_PASS") or "")
     server = os.getenv("DB_SERVER")
     port = os.getenv("DB_PORT", "1433")
     name = os.getenv("DB_NAME")
     return f"mssql+pymssql://{safe_user}:{safe_pass}@{server}:{port}/{name}"


def load_settings() -> Settings:
     """Build a Settings object from the current environment."""
     origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
     return Settings(
          payment_provider=os.getenv("PAYMENT_PROVIDER", "coinsnap"),
          default_amount=float(os.getenv("DEFAULT_AMOUNT", "0") or 0),
          default_currency=os.getenv("DEFAULT_CURRENCY", "USD"),
          coinsnap_api_key=os.getenv("COINSNAP_API_KEY", ""),
          coinsnap_store_id=os.getenv("COINSNAP_STORE_ID", ""),
          coinsnap_api_base=os.getenv("COINSNAP_API_BASE") or "https://app.coinsnap.io",
          coinsnap_webhook_secret=os.getenv("COINSNAP_WEBHOOK_SECRET", ""),
          btcpay_host=os.getenv("BTCPAY_HOST", ""),
          btcpay_api_key=os.getenv("BTCPAY_API_KEY", ""),
          btcpay_store_id=os.getenv("BTCPAY_STORE_ID", ""),
          btcpay_webhook_secret=os.getenv("BTCPAY_WEBHOOK_SECRET", ""),
          disable_webhook_verification=_env_bool("DISABLE_WEBHOOK_VERIFICATION"),
          provider_timeout=float(os.getenv("PROVIDER_TIMEOUT", "20")),
          log_level=os.getenv("LOG_LEVEL", "INFO"),
          log_file=os.getenv("LOG_FILE") or None,
          log_file_max_bytes=int(os.getenv("LOG_FILE_MAX_BYTES", str(5 * 1024 * 1024))),
          log_file_backups=int(os.getenv("LOG_FILE_BACKUPS", "5")),
          jwt_secret=os.getenv("JWT_SECRET"),
          form_token_ttl=int(os.getenv("FORM_TOKEN_TTL", "3600")),
          brevo_api_key=os.getenv("BREVO_API_KEY"),
          notify_sender_email=os.getenv("NOTIFY_SENDER_EMAIL", "noreply@example.com"),
          notify_sender_name=os.getenv("NOTIFY_SENDER_NAME", "Bitcoin Invoice Form"),
          admin_email=os.getenv("ADMIN_EMAIL"),
          database_url=build_database_url(),
          cors_origins=origins,
     )


@lru_cache
def get_settings() -> Settings:
     """FastAPI dependency returning the process-wide settings."""
     return load_settings()
