# ledger/notifications.py
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class Notifier:
    """
    Posts account events to an outbound webhook. Runs after the triggering
    transaction has committed; a failed delivery is logged and never raised.
    """

    def __init__(self, webhook_url=None, timeout=10, session=None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._session = session

    @property
    def session(self):
        if self._session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["POST"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            self._session = session
        return self._session

    def send(self, event, payload):
        if not self.webhook_url:
            logger.info(f"No notification webhook configured; skipping '{event}'")
            return False

        try:
            response = self.session.post(
                self.webhook_url,
                json={"event": event, "data": payload},
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'},
            )
        except requests.exceptions.Timeout:
            logger.warning(f"Notification '{event}' timed out after {self.timeout}s")
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"Notification '{event}' failed: {e}")
            return False

        if response.status_code >= 400:
            logger.warning(f"Notification '{event}' rejected: {response.status_code} - {response.text[:200]}")
            return False
        return True

    def welcome(self, user, address, referral_code):
        return self.send("user.registered", {
            "userId": user.id,
            "name": user.name,
            "identifier": user.identifier,
            "address": address,
            "referralCode": referral_code,
        })
