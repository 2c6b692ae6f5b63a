import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from billing.models import PaddleCustomer, PaddleSubscription
from billing.services.directory_sync import DirectorySynchronizer, DirectorySyncResult

URL = "/api/webhooks/paddle/"
SECRET = "pdl_ntfset_test_secret"


def _event(event_type="subscription.created", **data):
    payload = {"id": "sub_01", "status": "active", "customer_id": "ctm_01"}
    payload.update(data)
    return {
        "event_id": "evt_01",
        "event_type": event_type,
        "occurred_at": "2024-05-01T12:00:00Z",
        "data": payload,
    }


def _sign(raw, secret):
    ts = str(int(time.time()))
    digest = hmac.new(secret.encode("utf-8"), ts.encode("utf-8") + b":" + raw, hashlib.sha256).hexdigest()
    return f"ts={ts};h1={digest}"


def _post(client, body, signature=None, secret=SECRET):
    raw = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    headers = {}
    if signature is None:
        signature = _sign(raw, secret)
    if signature:
        headers["HTTP_PADDLE_SIGNATURE"] = signature
    return client.post(URL, data=raw, content_type="application/json", **headers)


@pytest.mark.django_db
def test_paddle_webhook_rejects_missing_signature(webhook_secrets):
    with patch("billing.views_webhook.process_paddle_event_async.delay") as delay:
        response = _post(APIClient(), _event(), signature="")

    assert response.status_code == 401
    delay.assert_not_called()


@pytest.mark.django_db
def test_paddle_webhook_bad_signature_writes_nothing(webhook_secrets, eager_celery):
    response = _post(APIClient(), _event(items=[{"quantity": 1, "price_id": "pri_a"}]), secret="wrong-secret")

    assert response.status_code == 401
    assert PaddleSubscription.objects.count() == 0


@pytest.mark.django_db
def test_paddle_webhook_rejects_malformed_json_after_valid_signature(webhook_secrets):
    with patch("billing.views_webhook.process_paddle_event_async.delay") as delay:
        response = _post(APIClient(), b"{not json")

    assert response.status_code == 400
    delay.assert_not_called()


@pytest.mark.django_db
def test_paddle_webhook_enqueues_supported_event(webhook_secrets):
    event = _event()

    with patch("billing.views_webhook.process_paddle_event_async.delay") as delay:
        response = _post(APIClient(), event)

    assert response.status_code == 200
    assert response.json() == {"success": True}
    delay.assert_called_once_with(event)


@pytest.mark.django_db
def test_paddle_webhook_acknowledges_unsupported_event_without_work(webhook_secrets):
    with patch("billing.views_webhook.process_paddle_event_async.delay") as delay:
        response = _post(APIClient(), _event(event_type="transaction.paid"))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    delay.assert_not_called()


@pytest.mark.django_db
def test_paddle_webhook_end_to_end(webhook_secrets, eager_celery, make_user):
    user = make_user("buyer", email="buyer@example.com")
    client = APIClient()

    with patch.object(
        DirectorySynchronizer,
        "sync_subscription",
        return_value=DirectorySyncResult(status=DirectorySyncResult.NO_USER),
    ) as sync:
        _post(client, _event(event_type="customer.created", id="ctm_01", email="buyer@example.com"))
        response = _post(
            client,
            _event(items=[{"quantity": 4, "price": {"id": "pri_org_monthly", "product_id": "pro_seats"}}]),
        )

    assert response.status_code == 200
    assert PaddleCustomer.objects.get().user == user
    subscription = PaddleSubscription.objects.get()
    assert subscription.user == user
    assert subscription.quantity == 4
    assert subscription.is_org_subscription is True
    sync.assert_called_once()
