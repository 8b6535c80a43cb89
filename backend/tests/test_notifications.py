# Overview: Pytest coverage for notification dispatch: webhook delivery and failure isolation.

import json
import logging

import httpx
import pytest

from lilium.models import Order
from lilium.services.bootstrap import build_engine, build_notifier
from lilium.services.notifications import (
    LogNotifier,
    ORDER_CREATED,
    WebhookNotifier,
    dispatch,
)
from lilium.validation import CreateOrderInput, OrderItemInput


LOGGER = logging.getLogger("lilium.tests.notifications")


class ExplodingNotifier:
    def send(self, event, payload):
        raise RuntimeError("notifier down")


def webhook_with(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookNotifier("https://hooks.lilium.test/events", LOGGER, client=client)


def test_webhook_posts_event_envelope():
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(204)

    webhook_with(handler).send(ORDER_CREATED, {"order_id": 1})

    [(method, url, body)] = seen
    assert method == "POST"
    assert url == "https://hooks.lilium.test/events"
    assert body["event"] == ORDER_CREATED
    assert body["data"] == {"order_id": 1}
    assert body["occurred_at"].endswith("Z")


def test_webhook_error_status_raises():
    notifier = webhook_with(lambda request: httpx.Response(500))
    with pytest.raises(httpx.HTTPStatusError):
        notifier.send(ORDER_CREATED, {})


def test_dispatch_logs_and_drops_http_failures(caplog):
    notifier = webhook_with(lambda request: httpx.Response(503))

    with caplog.at_level(logging.WARNING, logger=LOGGER.name):
        dispatch(notifier, LOGGER, ORDER_CREATED, {"order_id": 1})

    assert "Notification order.created failed" in caplog.text


def test_dispatch_logs_and_drops_any_failure(caplog):
    with caplog.at_level(logging.WARNING, logger=LOGGER.name):
        dispatch(ExplodingNotifier(), LOGGER, ORDER_CREATED, {})

    assert "notifier down" in caplog.text


def test_dispatch_without_notifier_is_noop():
    dispatch(None, LOGGER, ORDER_CREATED, {})


def test_log_notifier(caplog):
    with caplog.at_level(logging.INFO, logger=LOGGER.name):
        LogNotifier(LOGGER).send(ORDER_CREATED, {"order_id": 7})
    assert "order.created" in caplog.text


def test_notifier_choice_follows_config():
    assert isinstance(build_notifier({}, LOGGER), LogNotifier)
    webhook = build_notifier({"NOTIFICATION_WEBHOOK_URL": "https://hooks.lilium.test", "NOTIFICATION_TIMEOUT": "1.5"}, LOGGER)
    assert isinstance(webhook, WebhookNotifier)
    assert webhook.timeout == 1.5


def test_failing_notifier_never_undoes_an_order(app, db_session, shop_owner, karkh_address, rice):
    engine = build_engine(app, notifier=ExplodingNotifier())

    order = engine.orders.create_order(CreateOrderInput(
        buyer_id=shop_owner.id,
        address_id=karkh_address.id,
        items=(OrderItemInput(product_id=rice.id, quantity=1),),
    ))

    db_session.expire_all()
    assert db_session.get(Order, order.id).status == "PENDING"
