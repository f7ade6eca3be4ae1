"""Tests for /api/v1/orders endpoints."""

from src.db.models import TrackingClass
from src.services.order_events import DEFAULT_READY_STATUS
from tests.helpers import add_entries, add_order


class TestAssign:
    def test_assigns_by_weight(self, client, test_db):
        add_entries(test_db, TrackingClass.EG, ["EG1IN"])
        add_order(test_db, "1042", weights=["750"])

        response = client.post("/api/v1/orders/1042/assign")

        assert response.status_code == 200
        body = response.json()
        assert body["assigned"] is True
        assert body["tracking_id"] == "EG1IN"
        assert body["tracking_class"] == "EG"
        assert body["weight_grams"] == 750.0
        assert body["assigned_at"]

    def test_repeat_is_not_assigned(self, client, test_db):
        add_entries(test_db, TrackingClass.EG, ["EG1IN", "EG2IN"])
        add_order(test_db, "1", weights=["750"])
        client.post("/api/v1/orders/1/assign")

        body = client.post("/api/v1/orders/1/assign").json()

        assert body == {
            "order_id": "1",
            "assigned": False,
            "tracking_id": None,
            "tracking_class": None,
            "weight_grams": None,
            "assigned_at": None,
        }

    def test_unknown_order_is_not_assigned(self, client):
        body = client.post("/api/v1/orders/404/assign").json()

        assert body["assigned"] is False

    def test_exhausted_pool_is_conflict(self, client, test_db):
        add_order(test_db, "1", weights=["5000"])

        response = client.post("/api/v1/orders/1/assign")

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "E-3001"
        assert body["message"] == "No available CG tracking numbers for order 1."
        assert body["remediation"].startswith("Import more CG tracking numbers")


class TestOrderTracking:
    def test_get_tracking(self, client, test_db):
        add_entries(test_db, TrackingClass.CG, ["CG1IN"])
        add_order(test_db, "1")
        client.post("/api/v1/orders/1/assign")

        body = client.get("/api/v1/orders/1/tracking").json()

        assert body["tracking_number"] == "CG1IN"
        assert body["tracking_class"] == "CG"
        assert body["tracking_url"] == "https://www.aftership.com/track?t=CG1IN&c=india-post"

    def test_unknown_order_is_404(self, client):
        response = client.get("/api/v1/orders/404/tracking")

        assert response.status_code == 404
        assert response.json()["message"] == "Order '404' not found"

    def test_manual_entry(self, client, test_db):
        add_order(test_db, "1")

        response = client.put("/api/v1/orders/1/tracking", json={"tracking_number": "EG77IN"})

        assert response.status_code == 200
        assert response.json()["tracking_number"] == "EG77IN"

    def test_manual_entry_bad_format(self, client, test_db):
        add_order(test_db, "1")

        response = client.put("/api/v1/orders/1/tracking", json={"tracking_number": "nope"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "E-2001"

    def test_manual_entry_conflict(self, client, test_db):
        add_order(test_db, "1", tracking_number="EG1IN")

        response = client.put("/api/v1/orders/1/tracking", json={"tracking_number": "EG2IN"})

        assert response.status_code == 409


class TestOrderEvents:
    def test_created_ready_assigns(self, client, test_db):
        add_entries(test_db, TrackingClass.EG, ["EG1IN"])
        add_order(test_db, "1", weights=["100"])

        body = client.post(
            "/api/v1/orders/1/events/created", json={"status": DEFAULT_READY_STATUS}
        ).json()

        assert body["assigned"] is True
        assert body["tracking_id"] == "EG1IN"

    def test_created_other_status_does_nothing(self, client, test_db):
        add_entries(test_db, TrackingClass.EG, ["EG1IN"])
        add_order(test_db, "1", status="pending", weights=["100"])

        body = client.post("/api/v1/orders/1/events/created", json={}).json()

        assert body["assigned"] is False

    def test_status_changed_assigns_and_syncs(self, client, test_db):
        add_entries(test_db, TrackingClass.CG, ["CG1IN"])
        add_order(test_db, "1", status="pending")

        body = client.post(
            "/api/v1/orders/1/events/status-changed",
            json={"from_status": "pending", "to_status": DEFAULT_READY_STATUS},
        ).json()

        assert body["assigned"] is True
        assert body["status_synced"] is True

    def test_status_changed_exhaustion_is_reported(self, client, test_db):
        add_order(test_db, "1", status="pending")

        response = client.post(
            "/api/v1/orders/1/events/status-changed",
            json={"to_status": DEFAULT_READY_STATUS},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["assigned"] is False
        assert body["exhausted_class"] == "CG"
        assert "No available CG" in body["error"]

    def test_status_changed_requires_to_status(self, client):
        response = client.post("/api/v1/orders/1/events/status-changed", json={})

        assert response.status_code == 422
