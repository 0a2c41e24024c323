# providers/registry.py
"""
Provider resolution.

A form may override the site-wide provider; otherwise the configured
default is used. Unknown keys fall back to Coinsnap.
"""
from typing import Dict, Optional

import requests

from config import Settings

from .base import ProviderClient
from .btcpay import BTCPayClient
from .coinsnap import CoinsnapClient


PROVIDER_CLASSES = {
     "coinsnap": CoinsnapClient,
     "btcpay": BTCPayClient,
}
DEFAULT_PROVIDER = "coinsnap"


class ProviderRegistry:
     """Builds and caches one client per provider for a given Settings."""

     def __init__(self, settings: Settings, http: Optional[requests.Session] = None):
          self.settings = settings
          self.http = http
          self._clients: Dict[str, ProviderClient] = {}

     def resolve_key(self, provider_override: Optional[str] = None) -> str:
          """Per-form override (if non-empty) beats the global default."""
          key = (provider_override or "").strip().lower() or (self.settings.payment_provider or "").strip().lower()
          return key if key in PROVIDER_CLASSES else DEFAULT_PROVIDER

     def get(self, key: str) -> ProviderClient:
          """Return the client for a provider key."""
          key = key if key in PROVIDER_CLASSES else DEFAULT_PROVIDER
          if key not in self._clients:
               self._clients[key] = PROVIDER_CLASSES[key](self.settings, http=self.http)
          return self._clients[key]

     def close(self) -> None:
          """Release the HTTP sessions owned by the cached clients."""
          for client in self._clients.values():
               client.close()
          self._clients.clear()
