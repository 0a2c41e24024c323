# utils/email.py
import logging

import requests

from config import Settings

logger = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"


class EmailDeliveryError(Exception):
     """Raised when the transactional mail API rejects a message."""


def send_email(settings: Settings, to_email: str, subject: str, text: str) -> None:
     """Send a plain-text transactional email through Brevo."""
     if not settings.brevo_api_key:
          raise EmailDeliveryError("BREVO_API_KEY is not set")

     response = requests.post(
          BREVO_SEND_URL,
          headers={
               "api-key": settings.brevo_api_key,
               "Content-Type": "application/json",
          },
          json={
               "sender": {"name": settings.notify_sender_name, "email": settings.notify_sender_email},
               "to": [{"email": to_email}],
               "subject": subject,
               "textContent": text,
          },
          timeout=10,
     )
     if response.status_code not in (200, 201, 202):
          raise EmailDeliveryError(f"Brevo error: {response.text}")
     logger.debug(f"Brevo accepted email to {to_email}")
