"""HTTP clients for the merge source and the reminder webhook."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import requests

from .errors import RemoteFetchFailed
from .schema import DATE_KEY_RE

logger = logging.getLogger(__name__)


class MergeSourceClient:
    """Read-only endpoint returning {"YYYY-MM-DD": count} for one activity."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: int = 10):
        self.url = url
        self.token = token
        self.timeout = timeout

    def fetch(self) -> dict[str, int]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.get(self.url, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise RemoteFetchFailed("timeout") from e
        except requests.exceptions.ConnectionError as e:
            raise RemoteFetchFailed("connection_refused") from e
        except requests.exceptions.RequestException as e:
            raise RemoteFetchFailed(str(e)) from e

        if response.status_code != 200:
            raise RemoteFetchFailed(f"status {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteFetchFailed("response is not JSON") from e
        return parse_counts(body)


def parse_counts(body) -> dict[str, int]:
    """Validate a merge source payload. Rejects the whole payload on any bad entry."""
    if not isinstance(body, dict):
        raise RemoteFetchFailed("expected a JSON object of date -> count")
    counts = {}
    for date, count in body.items():
        if not isinstance(date, str) or not DATE_KEY_RE.match(date):
            raise RemoteFetchFailed(f"bad date key {date!r}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise RemoteFetchFailed(f"bad count for {date}: {count!r}")
        counts[date] = count
    return counts


class ReminderNotifier:
    """POSTs a JSON notification to a webhook when the reminder fires."""

    def __init__(self, webhook_url: str, timeout: int = 5):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def send(self, message: str, data: dict = None) -> dict:
        payload = {
            "type": "notification",
            "message": message,
            "timestamp": datetime.now().isoformat(),
            **(data or {}),
        }
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Reminder webhook failed: {e}")
            return {"success": False, "error": str(e)}
        if response.status_code >= 400:
            logger.warning(f"Reminder webhook returned {response.status_code}")
            return {"success": False, "status_code": response.status_code}
        return {"success": True, "status_code": response.status_code}
