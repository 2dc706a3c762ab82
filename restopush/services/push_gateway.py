import logging
from typing import List, Optional

import requests

from restopush.config import settings

logger = logging.getLogger(__name__)


class PushGatewayError(Exception):
    """A whole batch request to the push gateway failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ExpoPushClient:
    """Thin client for the Expo push API (https://docs.expo.dev/push-notifications/sending-notifications/)."""

    def __init__(
        self,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.EXPO_PUSH_URL
        self.access_token = access_token if access_token is not None else settings.EXPO_ACCESS_TOKEN
        self.timeout = timeout or settings.PUSH_REQUEST_TIMEOUT
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send(self, messages: List[dict]) -> List[dict]:
        """Post one batch and return one ticket per message, in request order."""
        if not messages:
            return []
        try:
            res = self.session.post(
                self.url, json=messages, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise PushGatewayError(f"Push service request failed: {exc}") from exc

        if not res.ok:
            raise PushGatewayError(
                f"Push service responded with {res.status_code}: {res.reason}",
                status_code=res.status_code,
                retryable=_is_retryable_status(res.status_code),
            )

        try:
            payload = res.json()
        except ValueError as exc:
            raise PushGatewayError(
                f"Push service returned invalid JSON: {exc}", status_code=res.status_code
            ) from exc

        return normalize_tickets(payload, len(messages))

    def close(self):
        self.session.close()


def normalize_tickets(payload, count: int) -> List[dict]:
    """Expo answers {"data": [...]} but a single object is applied to every message."""
    data = payload.get("data", payload) if isinstance(payload, dict) else payload
    if isinstance(data, dict):
        return [data] * count
    if isinstance(data, list):
        return list(data)
    logger.warning(f"Unexpected push service response shape: {type(payload).__name__}")
    return []
