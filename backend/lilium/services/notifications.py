# Overview: Fire-and-forget notification dispatchers for order, stock and payout events.

from __future__ import annotations

import httpx

from ..time_utils import to_utc_z, utcnow


ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
STOCK_ALERT = "stock.alert"
PAYOUT_STATUS_CHANGED = "payout.status_changed"


class LogNotifier:
    """Writes every event to the application log. Default when no webhook is configured."""

    def __init__(self, logger):
        self.logger = logger

    def send(self, event: str, payload: dict) -> None:
        self.logger.info("notification %s %s", event, payload)


class WebhookNotifier:
    """
    POSTs events as JSON to a single webhook URL.

    Body: {"event": "...", "occurred_at": "...Z", "data": {...}}
    """

    def __init__(self, url: str, logger, *, timeout: float = 3.0, client: httpx.Client | None = None):
        self.url = url
        self.logger = logger
        self.timeout = timeout
        self._client = client

    def send(self, event: str, payload: dict) -> None:
        body = {"event": event, "occurred_at": to_utc_z(utcnow()), "data": payload}
        if self._client is not None:
            response = self._client.post(self.url, json=body, timeout=self.timeout)
        else:
            response = httpx.post(self.url, json=body, timeout=self.timeout)
        response.raise_for_status()


def dispatch(notifier, logger, event: str, payload: dict) -> None:
    """
    Deliver one event after the owning transaction committed.

    Delivery failures are logged and dropped; they never undo committed work.
    """
    if notifier is None:
        return
    try:
        notifier.send(event, payload)
    except httpx.HTTPError as exc:
        logger.warning("Notification %s failed: %s", event, exc)
    except Exception:
        logger.warning("Notification %s failed", event, exc_info=True)
