"""
HTTP tests for the order endpoints, running the app with every role over the
in-memory runtime
"""
from factories import completed_assignment, headers, make_order
from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.models import OrderStatus, Priority


def order_body():
    return {
        "addresses": [
            {
                "addressType": "PICKUP",
                "contactName": "Abebe Kebede",
                "contactPhone": "+251911000001",
                "streetAddress": "Bole Road 12",
                "subcity": "Bole",
            },
            {
                "addressType": "DELIVERY",
                "contactName": "Sara Tesfaye",
                "contactPhone": "+251911000002",
                "streetAddress": "Piassa 4",
                "subcity": "Arada",
            },
        ],
        "parcels": [{"weightKg": 3.0, "description": "Shoes"}],
    }


def seed(client, runtime, order):
    client.portal.call(runtime.stores.orders.create, order)


class TestCreateOrder:

    def test_customer_places_order(self, client, broker):
        response = client.post("/api/orders", json=order_body(), headers=headers("C1"))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["customerId"] == "C1"
        assert data["orderNumber"].startswith("ORD-")
        assert data["trackingEvents"][0]["eventType"] == "ORDER_CREATED"
        assert broker.published_to(RoutingKeys.ORDER_CREATED)[0].payload["orderId"] == data["orderId"]

    def test_missing_identity(self, client):
        response = client.post("/api/orders", json=order_body())
        assert response.status_code == 401

    def test_courier_cannot_place_orders(self, client):
        response = client.post("/api/orders", json=order_body(), headers=headers("K1", "COURIER"))
        assert response.status_code == 403
        assert response.json()["error"] == "Access denied"

    def test_order_needs_a_parcel(self, client):
        body = order_body()
        body["parcels"] = []

        response = client.post("/api/orders", json=body, headers=headers("C1"))

        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"


class TestGetOrder:

    def test_owner_sees_order(self, client, runtime):
        seed(client, runtime, make_order())
        response = client.get("/api/orders/O1", headers=headers("C1"))
        assert response.status_code == 200
        assert response.json()["orderId"] == "O1"

    def test_other_customer_is_denied(self, client, runtime):
        seed(client, runtime, make_order())
        assert client.get("/api/orders/O1", headers=headers("C2")).status_code == 403

    def test_assigned_courier_and_admin_see_order(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.ASSIGNED_TO_COURIER, courier_id="K1"))
        assert client.get("/api/orders/O1", headers=headers("K1", "COURIER")).status_code == 200
        assert client.get("/api/orders/O1", headers=headers("A1", "ADMIN")).status_code == 200

    def test_unknown_order(self, client):
        response = client.get("/api/orders/missing", headers=headers("A1", "ADMIN"))
        assert response.status_code == 404
        assert response.json()["details"]["orderId"] == "missing"


class TestCourierEndpoints:

    def test_courier_orders_lists_active_only(self, client, runtime):
        seed(client, runtime, make_order("O1", status=OrderStatus.IN_TRANSIT, courier_id="K1"))
        seed(client, runtime, make_order("O2", status=OrderStatus.DELIVERED, courier_id="K1"))

        response = client.get("/api/orders/courier-orders", headers=headers("K1", "COURIER"))

        assert response.status_code == 200
        assert [o["orderId"] for o in response.json()] == ["O1"]

    def test_courier_moves_order_forward(self, client, runtime, broker):
        seed(client, runtime, make_order(status=OrderStatus.ASSIGNED_TO_COURIER, courier_id="K1"))

        response = client.patch(
            "/api/orders/O1/status",
            json={"status": "PICKED_UP", "latitude": 9.01, "longitude": 38.76},
            headers=headers("K1", "COURIER"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "PICKED_UP"
        assert response.json()["trackingEvents"][-1]["latitude"] == 9.01
        changed = broker.published_to(RoutingKeys.ORDER_STATUS_CHANGED)[-1].payload
        assert (changed["oldStatus"], changed["newStatus"]) == ("ASSIGNED_TO_COURIER", "PICKED_UP")

    def test_other_courier_is_rejected(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.ASSIGNED_TO_COURIER, courier_id="K1"))

        response = client.patch(
            "/api/orders/O1/status", json={"status": "PICKED_UP"}, headers=headers("K2", "COURIER")
        )

        assert response.status_code == 403

    def test_skipping_a_step_conflicts(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.ASSIGNED_TO_COURIER, courier_id="K1"))

        response = client.patch(
            "/api/orders/O1/status", json={"status": "DELIVERED"}, headers=headers("K1", "COURIER")
        )

        assert response.status_code == 409
        assert response.json()["details"]["currentStatus"] == "ASSIGNED_TO_COURIER"

    def test_courier_claims_confirmed_order(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.CONFIRMED))

        response = client.post("/api/orders/O1/assign", json={"courierId": "K1"}, headers=headers("K1", "COURIER"))

        assert response.status_code == 200
        assert response.json()["status"] == "ASSIGNED_TO_COURIER"
        assert response.json()["courierId"] == "K1"

    def test_courier_cannot_claim_for_someone_else(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.CONFIRMED))

        response = client.post("/api/orders/O1/assign", json={"courierId": "K2"}, headers=headers("K1", "COURIER"))

        assert response.status_code == 403

    def test_second_claim_conflicts(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.CONFIRMED))
        client.post("/api/orders/O1/assign", json={"courierId": "K1"}, headers=headers("A1", "ADMIN"))

        response = client.post("/api/orders/O1/assign", json={"courierId": "K2"}, headers=headers("A1", "ADMIN"))

        assert response.status_code == 409


class TestListOrders:

    def test_customer_sees_only_own_orders(self, client, runtime):
        seed(client, runtime, make_order("O1", customer_id="C1"))
        seed(client, runtime, make_order("O2", customer_id="C2"))

        response = client.get("/api/orders/my-orders", headers=headers("C1"))

        assert response.status_code == 200
        assert [o["orderId"] for o in response.json()] == ["O1"]

    def test_my_orders_is_for_customers(self, client):
        assert client.get("/api/orders/my-orders", headers=headers("K1", "COURIER")).status_code == 403

    def test_admin_filters_and_paginates(self, client, runtime):
        seed(client, runtime, make_order("O1", status=OrderStatus.CONFIRMED))
        seed(client, runtime, make_order("O2", status=OrderStatus.CONFIRMED, customer_id="C2"))
        seed(client, runtime, make_order("O3", status=OrderStatus.PENDING))
        seed(client, runtime, make_order("O4", status=OrderStatus.CONFIRMED, priority=Priority.EXPRESS))

        response = client.get(
            "/api/orders",
            params={"status": "CONFIRMED", "customerId": "C1", "limit": 1, "offset": 0},
            headers=headers("A1", "ADMIN"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0}
        assert len(body["orders"]) == 1
        assert body["orders"][0]["orderId"] in {"O1", "O4"}

        express = client.get("/api/orders", params={"priority": "EXPRESS"}, headers=headers("A1", "ADMIN")).json()
        assert [o["orderId"] for o in express["orders"]] == ["O4"]

    def test_order_list_is_admin_only(self, client):
        assert client.get("/api/orders", headers=headers("C1")).status_code == 403

    def test_unknown_status_filter_is_rejected(self, client):
        response = client.get("/api/orders", params={"status": "LOST"}, headers=headers("A1", "ADMIN"))
        assert response.status_code == 422


class TestCancelAndAutoAssign:

    def test_customer_cancels_pending_order(self, client, runtime):
        seed(client, runtime, make_order())

        response = client.post("/api/orders/O1/cancel", json={"reason": "Changed my mind"}, headers=headers("C1"))

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["trackingEvents"][-1]["notes"] == "Changed my mind"

    def test_cancel_without_body(self, client, runtime):
        seed(client, runtime, make_order())
        assert client.post("/api/orders/O1/cancel", headers=headers("A1", "ADMIN")).status_code == 200

    def test_cancel_after_pickup_conflicts(self, client, runtime):
        seed(client, runtime, make_order(status=OrderStatus.PICKED_UP, courier_id="K1"))
        assert client.post("/api/orders/O1/cancel", headers=headers("C1")).status_code == 409

    def test_other_customer_cannot_cancel(self, client, runtime):
        seed(client, runtime, make_order())
        assert client.post("/api/orders/O1/cancel", headers=headers("C2")).status_code == 403

    def test_admin_triggers_auto_assignment(self, client, runtime):
        client.portal.call(runtime.stores.assignments.add, completed_assignment("K1"))
        seed(client, runtime, make_order(status=OrderStatus.CONFIRMED))

        response = client.post("/api/orders/O1/auto-assign", headers=headers("A1", "ADMIN"))

        assert response.status_code == 200
        assert response.json() == {"orderId": "O1", "assigned": True}

    def test_auto_assign_is_admin_only(self, client):
        assert client.post("/api/orders/O1/auto-assign", headers=headers("C1")).status_code == 403
