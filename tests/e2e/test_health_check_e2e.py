"""E2E smoke test for the health check endpoint using Playwright.

Run with:
    pytest -m e2e --base-url http://localhost:8000

Requires:
    pip install pytest-playwright
    playwright install chromium
"""

import json

import pytest

pytestmark = [pytest.mark.e2e]


def test_health_check_reports_database_and_cache(page):
    """The browser shows the raw JSON body of /health."""
    page.goto("/health")

    body_text = page.text_content("body")
    assert body_text is not None

    data = json.loads(body_text)
    assert data["status"] == "healthy"
    assert set(data["services"]) == {"database", "cache"}
    assert "timestamp" in data


def test_health_check_echoes_request_id(page):
    response = page.goto("/health")
    assert "x-request-id" in response.headers


def test_catalog_is_browsable(api_request_context):
    response = api_request_context.get("/api/v1/products/")
    assert response.status == 200
    assert "results" in response.json()
