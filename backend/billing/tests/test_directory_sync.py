import json
from unittest.mock import MagicMock

import pytest

from billing.services.directory import DirectoryServiceError, DirectoryUser, KeycloakDirectoryClient
from billing.services.directory_sync import (
    DirectorySynchronizer,
    DirectorySyncResult,
    DirectoryUserResolver,
    build_subscription_attributes,
    is_stale,
)
from billing.services.paddle import CustomerData, PaddleServiceError, extract_webhook_data
from core.timestamps import parse_iso_timestamp


class FakeDirectory:
    """In-memory stand-in for the Keycloak admin API."""

    def __init__(self, users):
        self.users = users
        self.updates = []

    def get_user(self, email=None, subscription_id=None):
        for user in self.users:
            if email and user.email == email:
                return user
            if not email and subscription_id and user.first_attribute("paddle_subscription_id") == subscription_id:
                return user
        return None

    def update_user_attributes(self, user, attributes):
        self.updates.append((user.id, attributes))
        user.attributes = attributes


def _subscription(occurred_at, status="active", **extra):
    data = {
        "id": "sub_01",
        "status": status,
        "customer_id": "ctm_01",
        "collection_mode": "automatic",
        "items": [{"quantity": 2, "price": {"id": "pri_a", "product_id": "pro_a"}}],
    }
    data.update(extra)
    event = extract_webhook_data({"event_type": "subscription.updated", "occurred_at": occurred_at, "data": data})
    return event.subscription, event.occurred_at


def _synchronizer(directory, paddle=None):
    resolver = DirectoryUserResolver(directory=directory, paddle=paddle or MagicMock())
    return DirectorySynchronizer(resolver=resolver)


def test_build_subscription_attributes_uses_string_arrays():
    subscription, occurred_at = _subscription(
        "2024-05-01T12:00:00Z", scheduled_change={"action": "cancel", "effective_at": "2024-06-01T00:00:00Z"}
    )

    attributes = build_subscription_attributes(subscription, occurred_at)

    assert attributes["paddle_subscription_id"] == ["sub_01"]
    assert attributes["paddle_last_update"] == ["2024-05-01T12:00:00Z"]
    assert attributes["paddle_price_id"] == ["pri_a"]
    assert attributes["paddle_product_id"] == ["pro_a"]
    assert attributes["paddle_quantity"] == ["2"]
    assert json.loads(attributes["paddle_scheduled_change"][0])["action"] == "cancel"


def test_is_stale_requires_strictly_newer_event():
    occurred = parse_iso_timestamp("2024-05-01T12:00:00Z")

    assert is_stale("2024-05-01T12:00:00Z", occurred)
    assert is_stale("2024-05-02T00:00:00Z", occurred)
    assert not is_stale("2024-04-30T00:00:00Z", occurred)
    assert not is_stale(None, occurred)
    assert not is_stale("not-a-date", occurred)


def test_out_of_order_updates_end_at_latest_timestamp():
    user = DirectoryUser(id="kc-1", email="buyer@example.com", attributes={"paddle_subscription_id": ["sub_01"]})
    directory = FakeDirectory([user])
    synchronizer = _synchronizer(directory)

    newer = synchronizer.sync_subscription(*_subscription("2024-05-02T00:00:00Z", status="canceled"))
    older = synchronizer.sync_subscription(*_subscription("2024-05-01T00:00:00Z", status="active"))

    assert newer.status == DirectorySyncResult.UPDATED
    assert older.status == DirectorySyncResult.STALE
    assert user.attributes["paddle_last_update"] == ["2024-05-02T00:00:00Z"]
    assert user.attributes["paddle_subscription_status"] == ["canceled"]
    assert len(directory.updates) == 1


def test_sync_preserves_unrelated_attributes():
    user = DirectoryUser(
        id="kc-1",
        email="buyer@example.com",
        attributes={"paddle_subscription_id": ["sub_01"], "locale": ["de"]},
    )
    directory = FakeDirectory([user])

    _synchronizer(directory).sync_subscription(*_subscription("2024-05-01T00:00:00Z"))

    assert user.attributes["locale"] == ["de"]


def test_resolver_falls_back_to_paddle_customer_email():
    user = DirectoryUser(id="kc-1", email="buyer@example.com")
    paddle = MagicMock()
    paddle.fetch_customer.return_value = CustomerData(id="ctm_01", email="buyer@example.com")

    result = _synchronizer(FakeDirectory([user]), paddle).sync_subscription(*_subscription("2024-05-01T00:00:00Z"))

    paddle.fetch_customer.assert_called_once_with("ctm_01")
    assert result.status == DirectorySyncResult.UPDATED
    assert user.attributes["paddle_subscription_id"] == ["sub_01"]


def test_resolver_treats_paddle_errors_as_a_miss():
    paddle = MagicMock()
    paddle.fetch_customer.side_effect = PaddleServiceError("timeout")

    result = _synchronizer(FakeDirectory([]), paddle).sync_subscription(*_subscription("2024-05-01T00:00:00Z"))

    assert result.status == DirectorySyncResult.NO_USER


def test_sync_without_occurred_at_is_skipped():
    directory = FakeDirectory([DirectoryUser(id="kc-1", attributes={"paddle_subscription_id": ["sub_01"]})])
    subscription, _ = _subscription("2024-05-01T00:00:00Z")

    result = _synchronizer(directory).sync_subscription(subscription, None)

    assert result.status == DirectorySyncResult.SKIPPED
    assert directory.updates == []


def _response(status_code, body=None):
    response = MagicMock(status_code=status_code, text="")
    response.json.return_value = body
    return response


def _keycloak(session):
    return KeycloakDirectoryClient(
        base_url="https://auth.example.com",
        realm="meet",
        client_id="webhooks",
        client_secret="s3cret",
        session=session,
    )


def test_keycloak_client_searches_by_subscription_attribute():
    session = MagicMock()
    session.post.return_value = _response(200, {"access_token": "tok", "expires_in": 300})
    session.request.return_value = _response(200, [{"id": "kc-1", "email": "a@example.com", "attributes": {}}])

    user = _keycloak(session).get_user(subscription_id="sub_01")

    assert user.id == "kc-1"
    method, url = session.request.call_args.args
    assert (method, url) == ("GET", "https://auth.example.com/admin/realms/meet/users")
    assert session.request.call_args.kwargs["params"] == {"q": "paddle_subscription_id:sub_01"}
    assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer tok"}


def test_keycloak_client_puts_full_representation_with_new_attributes():
    session = MagicMock()
    session.post.return_value = _response(200, {"access_token": "tok", "expires_in": 300})
    session.request.return_value = _response(204)
    user = DirectoryUser.from_representation(
        {"id": "kc-1", "username": "buyer", "enabled": True, "attributes": {"locale": ["de"]}}
    )

    _keycloak(session).update_user_attributes(user, {"locale": ["de"], "paddle_subscription_id": ["sub_01"]})

    method, url = session.request.call_args.args
    assert (method, url) == ("PUT", "https://auth.example.com/admin/realms/meet/users/kc-1")
    sent = session.request.call_args.kwargs["json"]
    assert sent["enabled"] is True
    assert sent["attributes"]["paddle_subscription_id"] == ["sub_01"]


def test_keycloak_client_raises_on_token_failure():
    session = MagicMock()
    session.post.return_value = _response(401)

    with pytest.raises(DirectoryServiceError):
        _keycloak(session).get_user(email="a@example.com")
