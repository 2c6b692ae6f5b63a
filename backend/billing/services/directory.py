"""Keycloak admin REST client used to mirror subscription state onto user attributes."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# Refresh the admin token slightly before Keycloak expires it.
TOKEN_EXPIRY_MARGIN_SECONDS = 30


class DirectoryConfigurationError(RuntimeError):
    """Raised when the Keycloak connection settings are incomplete."""


class DirectoryServiceError(RuntimeError):
    """Raised when the Keycloak admin API fails or returns an unexpected body."""


@dataclass
class DirectoryUser:
    """A Keycloak user representation; ``raw`` is sent back verbatim on update."""

    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_representation(cls, data: Dict[str, Any]) -> "DirectoryUser":
        attributes = data.get("attributes") or {}
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            username=data.get("username"),
            attributes={key: list(value) for key, value in attributes.items()},
            raw=dict(data),
        )

    def first_attribute(self, name: str) -> Optional[str]:
        values = self.attributes.get(name) or []
        return values[0] if values else None


class KeycloakDirectoryClient:
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        realm: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or getattr(settings, "KEYCLOAK_BASE_URL", "")).rstrip("/")
        self.realm = realm or getattr(settings, "KEYCLOAK_REALM", "")
        self.client_id = client_id or getattr(settings, "KEYCLOAK_CLIENT_ID", "")
        self.client_secret = client_secret or getattr(settings, "KEYCLOAK_CLIENT_SECRET", "")
        self.timeout = timeout or getattr(settings, "EXTERNAL_HTTP_TIMEOUT_SECONDS", 10)
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _ensure_configured(self) -> None:
        missing = [
            name
            for name, value in (
                ("KEYCLOAK_BASE_URL", self.base_url),
                ("KEYCLOAK_REALM", self.realm),
                ("KEYCLOAK_CLIENT_ID", self.client_id),
                ("KEYCLOAK_CLIENT_SECRET", self.client_secret),
            )
            if not value
        ]
        if missing:
            raise DirectoryConfigurationError(f"Missing Keycloak settings: {', '.join(missing)}")

    def _access_token(self) -> str:
        self._ensure_configured()
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        url = f"{self.base_url}/realms/{self.realm}/protocol/openid-connect/token"
        try:
            response = self.session.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise DirectoryServiceError(f"Keycloak token request failed: {exc}") from exc

        if response.status_code != 200:
            raise DirectoryServiceError(f"Keycloak token request returned {response.status_code}")

        try:
            body = response.json()
            token = body["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DirectoryServiceError("Keycloak token response did not contain an access token.") from exc

        expires_in = int(body.get("expires_in") or 60)
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return token

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/admin/realms/{self.realm}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise DirectoryServiceError(f"Keycloak {method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Keycloak %s %s returned %s: %s", method, path, response.status_code, response.text[:500])
            raise DirectoryServiceError(f"Keycloak {method} {path} returned {response.status_code}")
        return response

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, email: Optional[str] = None, subscription_id: Optional[str] = None) -> Optional[DirectoryUser]:
        """Find one user by exact email, or by ``paddle_subscription_id`` attribute.

        Email wins when both are given. Returns ``None`` when nothing matches.
        """

        if email:
            params = {"email": email, "exact": "true"}
        elif subscription_id:
            params = {"q": f"paddle_subscription_id:{subscription_id}"}
        else:
            raise ValueError("Either email or subscription_id is required.")

        response = self._request("GET", "users", params=params)
        try:
            users = response.json()
        except ValueError as exc:
            raise DirectoryServiceError("Keycloak user search returned a non-JSON body.") from exc

        if not isinstance(users, list) or not users:
            return None
        if len(users) > 1:
            logger.warning("Keycloak returned %s users for lookup %s; using the first.", len(users), params)
        return DirectoryUser.from_representation(users[0])

    def update_user_attributes(self, user: DirectoryUser, attributes: Dict[str, List[str]]) -> None:
        """Replace the user's attribute set; the rest of the representation is sent unchanged."""

        representation = dict(user.raw)
        representation["attributes"] = attributes
        self._request("PUT", f"users/{user.id}", json=representation)
        user.attributes = attributes
        user.raw = representation
