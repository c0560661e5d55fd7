"""Webhook delivery — signed HTTP POST of a single event.

The sender performs exactly one attempt and classifies its outcome; retry
scheduling belongs to :class:`~stablecoin_pay.notifications.dispatcher.WebhookDispatcher`.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from stablecoin_pay.errors.payment_errors import WebhookDeliveryError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_ID_HEADER = "X-Webhook-Id"
EVENT_TYPE_HEADER = "X-Webhook-Event"

# Retryable status codes outside the 5xx range
_TRANSIENT_STATUSES = frozenset({408, 429})


def is_valid_webhook_url(url: str | None) -> bool:
    """Whether *url* is an absolute http(s) URL with a host that httpx can request."""
    if not url:
        return False
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def canonical_body(payload: dict[str, Any]) -> bytes:
    """Serialize *payload* to the exact bytes that are signed and sent."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode()


def sign(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` HMAC signature header value for *body*."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookSender:
    """Posts signed webhook payloads with an ``httpx.AsyncClient``."""

    def __init__(self, secret: str, *, timeout: float = 10.0) -> None:
        self._secret = secret
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=False)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        event_id: str,
        event_type: str,
    ) -> int:
        """POST *payload* to *url* once.

        Returns:
            The 2xx status code of the response.

        Raises:
            WebhookDeliveryError: With ``permanent`` set for outcomes a retry
                cannot fix (malformed URL, 3xx, 4xx other than 408/429).
        """
        if self._client is None:
            msg = "Webhook sender not connected. Call connect() first."
            raise RuntimeError(msg)
        if not is_valid_webhook_url(url):
            raise WebhookDeliveryError(f"Invalid webhook URL: {url!r}", permanent=True)

        body = canonical_body(payload)
        headers = {
            "Content-Type": "application/json",
            EVENT_ID_HEADER: event_id,
            EVENT_TYPE_HEADER: event_type,
            SIGNATURE_HEADER: sign(body, self._secret),
        }

        try:
            response = await self._client.post(url, content=body, headers=headers)
        except httpx.InvalidURL as exc:
            raise WebhookDeliveryError(f"Invalid webhook URL: {url!r}", permanent=True) from exc
        except httpx.TimeoutException as exc:
            raise WebhookDeliveryError(f"Webhook {url} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise WebhookDeliveryError(f"Webhook {url} error: {exc}") from exc

        status = response.status_code
        if 200 <= status < 300:
            return status

        transient = status >= 500 or status in _TRANSIENT_STATUSES
        logger.warning("Webhook %s returned %d for event %s", url, status, event_id)
        raise WebhookDeliveryError(
            f"Webhook {url} returned HTTP {status}",
            permanent=not transient,
            status=status,
        )
