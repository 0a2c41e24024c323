# routers/dependencies.py
"""
Shared FastAPI dependencies: auth checks and service wiring.
"""
import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_session
from providers.registry import ProviderRegistry
from services.form_service import FormRepository
from services.invoice_store import InvoiceStore
from services.notification import EmailNotificationDispatcher, NotificationDispatcher
from services.reconciliation import ReconciliationEngine
from utils.tokens import TokenError, decode_token

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "manager")


def verify_token(request: Request, settings: Settings = Depends(get_settings)) -> dict:
     """Bearer JWT auth for admin endpoints."""
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ", 1)[1]
     try:
          payload = decode_token(settings, token)
     except TokenError:
          raise HTTPException(status_code=403, detail="Invalid token")
     if payload.get("role") not in ADMIN_ROLES:
          raise HTTPException(status_code=403, detail="Admin access required")
     return payload


@lru_cache
def get_provider_registry() -> ProviderRegistry:
     """Process-wide registry, so provider clients reuse their HTTP connection pools."""
     return ProviderRegistry(get_settings())


def get_notifier(
     db: Session = Depends(get_session),
     settings: Settings = Depends(get_settings),
) -> NotificationDispatcher:
     return EmailNotificationDispatcher(settings, FormRepository(db))


def get_reconciliation_engine(
     db: Session = Depends(get_session),
     settings: Settings = Depends(get_settings),
     registry: ProviderRegistry = Depends(get_provider_registry),
     notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReconciliationEngine:
     return ReconciliationEngine(
          store=InvoiceStore(db),
          forms=FormRepository(db),
          registry=registry,
          notifier=notifier,
          settings=settings,
     )


def client_ip(request: Request) -> str:
     """First address in X-Forwarded-For, else the peer address."""
     forwarded = request.headers.get("X-Forwarded-For", "")
     for ip in forwarded.split(","):
          ip = ip.strip()
          if ip:
               return ip
     if request.client and request.client.host:
          return request.client.host
     return "0.0.0.0"
