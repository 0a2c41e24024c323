# utils/tokens.py
"""
JWT helpers (python-jose).

Two token kinds share the signing secret:
- admin bearer tokens carrying ``id`` and ``role``
- short lived form tokens bound to one form id, required on invoice
  creation as a same-origin check
"""
import time
from typing import Optional

from jose import JWTError, jwt

from config import Settings

FORM_TOKEN_PURPOSE = "invoice-form"


class TokenError(Exception):
     """Token missing, malformed, expired or for the wrong purpose."""


def _require_secret(settings: Settings) -> str:
     if not settings.jwt_secret:
          raise TokenError("JWT_SECRET is not configured")
     return settings.jwt_secret


def decode_token(settings: Settings, token: str) -> dict:
     try:
          return jwt.decode(token, _require_secret(settings), algorithms=[settings.jwt_algorithm])
     except JWTError as e:
          raise TokenError(str(e))


def issue_form_token(settings: Settings, form_id: int, now: Optional[float] = None) -> str:
     """Sign a token that authorises one invoice creation flow for ``form_id``."""
     issued = int(now if now is not None else time.time())
     claims = {
          "purpose": FORM_TOKEN_PURPOSE,
          "form_id": form_id,
          "iat": issued,
          "exp": issued + settings.form_token_ttl,
     }
     return jwt.encode(claims, _require_secret(settings), algorithm=settings.jwt_algorithm)


def verify_form_token(settings: Settings, token: Optional[str], form_id: int) -> dict:
     """
     Validate a form token for ``form_id``.

     Raises:
          TokenError: If the token is missing, invalid, expired or issued
               for another form.
     """
     if not token:
          raise TokenError("Missing form token")
     claims = decode_token(settings, token)
     if claims.get("purpose") != FORM_TOKEN_PURPOSE:
          raise TokenError("Not a form token")
     if claims.get("form_id") != form_id:
          raise TokenError("Form token issued for another form")
     return claims
