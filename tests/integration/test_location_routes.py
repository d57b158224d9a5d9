"""Integration tests for the public /api/v1/locations routes."""

import pytest

pytestmark = pytest.mark.integration


class TestLocations:
    def test_divisions(self, client):
        divisions = client.get("/api/v1/locations/divisions").json()

        assert len(divisions) == 8
        assert {"id": "3", "name": "Dhaka", "name_bn": "ঢাকা"} in divisions

    def test_districts_of_division(self, client):
        districts = client.get("/api/v1/locations/divisions/3/districts").json()

        assert len(districts) == 13
        assert all(d["division_id"] == "3" for d in districts)

    def test_unknown_division(self, client):
        response = client.get("/api/v1/locations/divisions/99/districts")
        assert response.status_code == 404
        assert response.json()["error_code"] == "ERR_ADDRESS_003"

    def test_upazilas_of_district(self, client):
        upazilas = client.get("/api/v1/locations/districts/301/upazilas").json()
        assert "Savar" in {u["name"] for u in upazilas}

    def test_district_without_upazila_data(self, client):
        response = client.get("/api/v1/locations/districts/101/upazilas")
        assert response.status_code == 200
        assert response.json() == []

    def test_unknown_district(self, client):
        assert client.get("/api/v1/locations/districts/999/upazilas").status_code == 404


class TestValidateAddress:
    def test_valid(self, client):
        response = client.post(
            "/api/v1/locations/validate-address",
            json={
                "first_name": "Rahim",
                "last_name": "Uddin",
                "phone": "01712345678",
                "address_line1": "House 12, Road 5, Dhanmondi",
                "division": "Dhaka",
                "district": "Dhaka",
                "postal_code": "1205",
                "landmark": "ignored",
            },
        )
        assert response.json() == {"valid": True, "errors": {}, "errors_bn": {}}

    def test_invalid(self, client):
        data = client.post("/api/v1/locations/validate-address", json={"division": "Atlantis"}).json()

        assert data["valid"] is False
        assert "division" in data["errors"]
        assert set(data["errors"]) == set(data["errors_bn"])


class TestGeneralRateLimit:
    def test_public_routes_carry_limit_headers(self, client):
        response = client.get("/api/v1/locations/divisions")

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"

    def test_limit_applies_to_public_routes(self, client):
        for _ in range(100):
            assert client.get("/api/v1/locations/divisions").status_code == 200

        response = client.get("/api/v1/locations/divisions")

        assert response.status_code == 429
        data = response.json()
        assert data["error_code"] == "ERR_LIMIT_001"
        assert data["limit"] == 100
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_clients_are_counted_separately(self, client):
        for _ in range(100):
            client.get("/api/v1/locations/divisions")

        response = client.get("/api/v1/locations/divisions", headers={"X-Forwarded-For": "198.51.100.7"})

        assert response.status_code == 200
