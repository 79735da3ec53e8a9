"""
Tests for the health check endpoint.
"""

import pytest
from rest_framework import status

HEALTH_URL = "/health/"


@pytest.mark.django_db
class TestHealthCheck:
    """GET /health/"""

    def test_healthy(self, client):
        response = client.get(HEALTH_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }

    def test_cache_outage_does_not_fail_probe(self, client, mocker):
        mocker.patch("core.views.cache.set", side_effect=ConnectionError("redis down"))

        response = client.get(HEALTH_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["cache"] == "disconnected"

    def test_database_outage_returns_503(self, client, mocker):
        mocker.patch("core.views.connection.cursor", side_effect=Exception("db down"))

        response = client.get(HEALTH_URL)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "unhealthy"
