import pytest


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_cache_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_fulfillment_mode(self, client):
        data = client.get("/health").json()
        assert data["services"]["configuration"]["status"] == "up"
        assert data["services"]["configuration"]["fulfillment_mode"] == "test"

    @pytest.mark.parametrize("name", ["STRIPE_WEBHOOK_SECRET", "SCM_PASSWORD"])
    def test_missing_credentials_are_unhealthy(self, client, settings, name):
        setattr(settings, name, "")

        response = client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert name in data["services"]["configuration"]["missing"]

    def test_placeholder_credentials_are_unhealthy(self, client, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_..."

        response = client.get("/health")

        assert response.status_code == 503
        assert "STRIPE_SECRET_KEY" in response.json()["services"]["configuration"]["missing"]
