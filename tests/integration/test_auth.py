"""Integration tests for SimpleJWT authentication.

Validates:
  - /health is public (plain Django view, no DRF).
  - Token obtain / refresh / verify endpoints.
  - A Bearer access token authenticates API requests.
  - Staff-only and authenticated-only endpoints answer 401 without a token.
"""

import pytest

pytestmark = pytest.mark.integration

TOKEN_URL = "/api/v1/auth/token/"


@pytest.fixture()
def tokens(api_client, user):
    response = api_client.post(
        TOKEN_URL, {"username": "buyer", "password": "buyer123"}, format="json"
    )
    assert response.status_code == 200
    return response.json()


class TestPublicEndpoints:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_catalog_is_public(self, api_client):
        assert api_client.get("/api/v1/products/").status_code == 200

    def test_schema_is_public(self, api_client):
        response = api_client.get("/api/schema/")
        assert response.status_code == 200
        assert b"/api/v1/orders/" in response.content


class TestTokens:
    def test_obtain_pair(self, tokens):
        assert set(tokens) == {"access", "refresh"}

    def test_wrong_password(self, api_client, user):
        response = api_client.post(
            TOKEN_URL, {"username": "buyer", "password": "nope"}, format="json"
        )
        assert response.status_code == 401

    def test_refresh(self, api_client, tokens):
        response = api_client.post(
            f"{TOKEN_URL}refresh/", {"refresh": tokens["refresh"]}, format="json"
        )
        assert response.status_code == 200
        assert "access" in response.json()

    def test_verify(self, api_client, tokens):
        response = api_client.post(
            f"{TOKEN_URL}verify/", {"token": tokens["access"]}, format="json"
        )
        assert response.status_code == 200

    def test_bearer_token_owns_new_cart(self, api_client, tokens, user):
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")

        response = api_client.post("/api/v1/orders/", {}, format="json")

        assert response.status_code == 201
        assert response.json()["owner_id"] == user.pk


class TestProtectedEndpoints:
    def test_no_token_returns_401(self, api_client):
        assert api_client.get("/api/v1/orders/").status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        assert api_client.get("/api/v1/orders/").status_code == 401

    def test_unknown_scheme_is_anonymous(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        assert api_client.get("/api/v1/orders/").status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get("/api/v1/orders/")
        assert response.status_code == 401
        assert "Bearer" in response.get("WWW-Authenticate", "")
