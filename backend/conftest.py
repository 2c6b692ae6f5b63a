import hashlib
import hmac
import time

import pytest
from django.contrib.auth import get_user_model

from backend.celery import app as celery_app


@pytest.fixture
def eager_celery():
    """Run ``.delay`` calls inline so a webhook request drives reconciliation end to end."""
    # The app reads settings under the ``CELERY`` namespace, where the prefixed
    # key shadows the plain attribute, so override the prefixed key.
    previous = celery_app.conf.task_always_eager
    celery_app.conf["CELERY_TASK_ALWAYS_EAGER"] = True
    try:
        yield celery_app
    finally:
        celery_app.conf["CELERY_TASK_ALWAYS_EAGER"] = previous


@pytest.fixture
def make_user(db):
    def _make_user(username="alice", email=None, **extra):
        return get_user_model().objects.create_user(
            username=username,
            email=email or f"{username}@example.com",
            password="pass1234",
            **extra,
        )

    return _make_user


@pytest.fixture
def webhook_secrets(settings):
    settings.ROOM_WEBHOOK_SECRET = "room-secret"
    settings.PADDLE_WEBHOOK_SECRET = "pdl_ntfset_test_secret"
    settings.PADDLE_WEBHOOK_MAX_VARIANCE_SECONDS = 5
    settings.PADDLE_ORG_SEAT_PRICE_IDS = ["pri_org_monthly", "pri_org_annual"]
    return settings


@pytest.fixture
def paddle_signature():
    """Build a ``Paddle-Signature`` header the way Paddle signs notifications."""

    def _sign(raw_body, secret, *, timestamp=None):
        ts = str(int(time.time()) if timestamp is None else timestamp)
        body = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), ts.encode("utf-8") + b":" + body, hashlib.sha256).hexdigest()
        return f"ts={ts};h1={digest}"

    return _sign
