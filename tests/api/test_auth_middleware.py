"""Tests for optional API-key auth and app-level endpoints."""

import pytest

from src.api.middleware.auth import (
    reset_rate_limiter,
    should_authenticate,
    validate_api_key_strength,
)

API_KEY = "a" * 32 + "-test-key"


@pytest.fixture
def keyed(monkeypatch):
    monkeypatch.setenv("TRACKPOOL_API_KEY", API_KEY)
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/v1/trackings/summary", True),
        ("/health", False),
        ("/docs", False),
        ("/openapi.json", False),
        ("/", False),
    ],
)
def test_should_authenticate(path, expected):
    assert should_authenticate(path) is expected


def test_short_key_refused(monkeypatch):
    monkeypatch.setenv("TRACKPOOL_API_KEY", "short")

    with pytest.raises(ValueError):
        validate_api_key_strength()


def test_no_key_means_open_api(client):
    assert client.get("/api/v1/trackings/summary").status_code == 200


class TestWithKey:
    def test_missing_key_rejected(self, keyed, client):
        response = client.get("/api/v1/trackings/summary")

        assert response.status_code == 401

    def test_correct_key_accepted(self, keyed, client):
        response = client.get("/api/v1/trackings/summary", headers={"X-API-Key": API_KEY})

        assert response.status_code == 200

    def test_health_is_public(self, keyed, client):
        assert client.get("/health").status_code == 200

    def test_repeated_failures_rate_limited(self, keyed, client):
        for _ in range(10):
            client.get("/api/v1/trackings/summary", headers={"X-API-Key": "wrong"})

        response = client.get("/api/v1/trackings/summary", headers={"X-API-Key": API_KEY})

        assert response.status_code == 429


def test_health_reports_pools(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert set(body["available"]) == {"EG", "CG"}
    assert body["uptime_seconds"] >= 0


def test_api_root(client):
    assert client.get("/api").json()["name"] == "TrackPool API"
