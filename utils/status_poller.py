# utils/status_poller.py
"""
Client side status polling, as run by the checkout page while the
payment modal is open.

Polls GET /status/{invoice_id} once a second. After the first half of
the attempt budget it also asks POST /verify-payment/{invoice_id} a few
times, in case webhook delivery and the provider status call are both
lagging. Transport failures slow the next attempt down slightly and are
otherwise ignored.
"""
import logging
import time
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
RETRY_INTERVAL = 1.5
MAX_TRIES = 60
VERIFY_AFTER = 30
MAX_VERIFY_TRIES = 3


def _is_paid(response: requests.Response) -> bool:
     try:
          body = response.json()
     except ValueError:
          return False
     if not isinstance(body, dict) or not body.get("success"):
          return False
     data = body.get("data") or {}
     return bool(data.get("paid"))


def poll_payment_status(
     base_url: str,
     invoice_id: str,
     http=None,
     sleep: Callable[[float], None] = time.sleep,
     is_cancelled: Optional[Callable[[], bool]] = None,
     max_tries: int = MAX_TRIES,
     verify_after: int = VERIFY_AFTER,
     max_verify_tries: int = MAX_VERIFY_TRIES,
     timeout: float = 10,
) -> Optional[bool]:
     """
     Poll until the invoice is paid, the budget runs out or the caller cancels.

     Args:
          base_url: API root, e.g. ``https://pay.example.com``
          invoice_id: Processor invoice id returned by /payment/create
          http: requests-compatible session (defaults to ``requests``)
          sleep: Delay function, injectable for tests
          is_cancelled: Returns True once the modal is closed

     Returns:
          True once paid; None when cancelled or out of attempts.
     """
     http = http or requests
     base_url = base_url.rstrip("/")
     status_url = f"{base_url}/status/{invoice_id}"
     verify_url = f"{base_url}/verify-payment/{invoice_id}"
     verify_tries = 0

     for attempt in range(1, max_tries + 1):
          if is_cancelled and is_cancelled():
               logger.debug(f"Polling cancelled: invoice_id={invoice_id}")
               return None

          delay = POLL_INTERVAL
          try:
               if _is_paid(http.get(status_url, timeout=timeout)):
                    return True

               if attempt > verify_after and verify_tries < max_verify_tries:
                    verify_tries += 1
                    if _is_paid(http.post(verify_url, timeout=timeout)):
                         return True
          except requests.RequestException as e:
               logger.warning(f"Status poll failed: invoice_id={invoice_id}, attempt={attempt}, error={e}")
               delay = RETRY_INTERVAL

          if attempt < max_tries:
               sleep(delay)

     logger.info(f"Stopped polling after {max_tries} attempts: invoice_id={invoice_id}")
     return None
