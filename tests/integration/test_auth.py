"""Integration tests for SimpleJWT authentication and actor resolution.

Validates:
  - /health is public (plain Django view, no DRF).
  - Protected DRF endpoints return 401 without or with a bad token.
  - A token obtained from /api/v1/auth/token/ resolves to the right actor
    role (user, staff, admin).
  - The Stripe webhook endpoint stays reachable without a token.
"""

import pytest

pytestmark = pytest.mark.integration


def _bearer(api_client, username):
    response = api_client.post(
        "/api/v1/auth/token/",
        {"username": username, "password": "testpass123"},
        format="json",
    )
    assert response.status_code == 200
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
    return api_client


class TestPublicEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_webhook_does_not_require_a_token(self, api_client):
        response = api_client.post(
            "/api/v1/payments/webhooks/stripe/",
            data=b"{}",
            content_type="application/json",
        )
        # Rejected for the missing signature, not for missing credentials.
        assert response.status_code == 400


class TestProtectedEndpoints:
    """All DRF endpoints require a valid JWT by default (Fail Closed)."""

    @pytest.mark.parametrize(
        "method, url",
        [
            ("get", "/api/v1/me"),
            ("get", "/api/v1/orders/MC-ABC234/"),
            ("post", "/api/v1/payments/"),
            ("post", "/api/v1/tickets/TK-ABC234/claim/"),
        ],
    )
    def test_no_token_returns_401(self, api_client, method, url):
        response = getattr(api_client, method)(url)
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get("/api/v1/me")
        assert response.status_code == 401
        assert "Bearer" in response.get("WWW-Authenticate", "")


class TestActorResolution:
    def test_regular_user(self, api_client, owner):
        response = _bearer(api_client, "owner").get("/api/v1/me")
        assert response.status_code == 200
        assert response.data == {"id": owner.pk, "role": "user"}

    def test_staff_member(self, api_client, staff_user):
        response = _bearer(api_client, "staff").get("/api/v1/me")
        assert response.data == {"id": staff_user.pk, "role": "staff"}

    def test_administrator(self, api_client, admin_user):
        response = _bearer(api_client, "admin").get("/api/v1/me")
        assert response.data == {"id": admin_user.pk, "role": "admin"}
