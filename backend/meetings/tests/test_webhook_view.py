import json
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from meetings.models import Meeting, MeetingEvent

URL = "/api/webhooks/room-server/"


def _post(client, payload, token="room-secret"):
    headers = {"HTTP_AUTHORIZATION": f"Bearer {token}"} if token else {}
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return client.post(URL, data=body, content_type="application/json", **headers)


@pytest.mark.django_db
def test_room_webhook_rejects_bad_token(webhook_secrets):
    with patch("meetings.views_webhook.process_room_event_async.delay") as delay:
        response = _post(APIClient(), {"event_name": "muc-room-created", "room_name": "standup"}, token="nope")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    delay.assert_not_called()


@pytest.mark.django_db
def test_room_webhook_rejects_missing_token(webhook_secrets):
    response = _post(APIClient(), {"event_name": "muc-room-created", "room_name": "standup"}, token=None)

    assert response.status_code == 401


@pytest.mark.django_db
def test_room_webhook_rejects_when_secret_not_configured(settings):
    settings.ROOM_WEBHOOK_SECRET = ""

    response = _post(APIClient(), {"event_name": "muc-room-created", "room_name": "standup"}, token="anything")

    assert response.status_code == 401


@pytest.mark.django_db
def test_room_webhook_rejects_invalid_json(webhook_secrets):
    response = _post(APIClient(), "{not json")

    assert response.status_code == 400


@pytest.mark.django_db
def test_room_webhook_rejects_occupant_event_without_room(webhook_secrets):
    with patch("meetings.views_webhook.process_room_event_async.delay") as delay:
        response = _post(APIClient(), {"event_name": "muc-occupant-joined", "occupant": {"joined_at": 1}})

    assert response.status_code == 400
    assert "error" in response.json()
    delay.assert_not_called()


@pytest.mark.django_db
def test_room_webhook_rejects_host_event_without_email(webhook_secrets):
    response = _post(APIClient(), {"type": "HOST_ASSIGNED", "room": "standup"})

    assert response.status_code == 400


@pytest.mark.django_db
def test_room_webhook_acknowledges_ignored_events_without_work(webhook_secrets):
    with patch("meetings.views_webhook.process_room_event_async.delay") as delay:
        response = _post(APIClient(), {"event_name": "muc-occupant-pre-join", "room_name": "standup"})

    assert response.status_code == 200
    assert response.content == b""
    delay.assert_not_called()


@pytest.mark.django_db
def test_room_webhook_enqueues_actionable_event(webhook_secrets):
    payload = {"event_name": "muc-room-created", "room_name": "standup"}

    with patch("meetings.views_webhook.process_room_event_async.delay") as delay:
        response = _post(APIClient(), payload)

    assert response.status_code == 200
    assert response.content == b""
    delay.assert_called_once()
    assert delay.call_args.args[0] == payload


@pytest.mark.django_db
def test_room_webhook_end_to_end(webhook_secrets, eager_celery, make_user):
    user = make_user("host", email="host@example.com")
    client = APIClient()

    _post(client, {"event_name": "muc-room-created", "room_name": "standup", "room_jid": "standup@conf.example.com"})
    _post(client, {"type": "HOST_ASSIGNED", "room": "standup", "room_jid": "standup@conf.example.com", "email": "host@example.com"})
    _post(client, {"type": "HOST_ASSIGNED", "room": "standup", "email": "unknown@example.com"})

    assert Meeting.objects.count() == 1
    assert MeetingEvent.objects.count() == 3
    user.refresh_from_db()
    assert user.is_active_host is True
    assert user.host_session_start_time is not None


@pytest.mark.django_db
def test_room_webhook_unknown_host_user_returns_ok_without_mutation(webhook_secrets, eager_celery, make_user):
    user = make_user("host", email="host@example.com")

    response = _post(APIClient(), {"type": "HOST_LEFT", "room": "standup", "email": "unknown@example.com"})

    assert response.status_code == 200
    user.refresh_from_db()
    assert user.total_host_minutes == 0
    assert user.is_active_host is False
