"""Webhook notifications — durable outbox, signed delivery, retry policy."""

from __future__ import annotations

from stablecoin_pay.notifications.backoff import ExponentialBackoff
from stablecoin_pay.notifications.dispatcher import DeliveryReport, WebhookDispatcher
from stablecoin_pay.notifications.webhook import WebhookSender, is_valid_webhook_url

__all__ = [
    "DeliveryReport",
    "ExponentialBackoff",
    "WebhookDispatcher",
    "WebhookSender",
    "is_valid_webhook_url",
]
