"""
API tests: authentication, role checks and the JSON error contract.

Verifies:
- Unauthenticated requests return 401
- Employees are denied admin-only operations (403)
- Admins can perform privileged operations
- Failures come back as {success, error, kind, field_errors?, details?}
"""

import base64
import io

import pytest

from stockpilot.extensions import db
from stockpilot.models import Order, Product, SessionToken, User
from stockpilot.services import order_service

from conftest import make_product


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/categories"),
            ("GET", "/api/customer-categories"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers/import"),
            ("GET", "/api/orders"),
            ("GET", "/api/orders/deleted"),
            ("POST", "/api/inventory/stock-in"),
            ("POST", "/api/inventory/adjustments"),
            ("GET", "/api/inventory/movements"),
            ("GET", "/api/dashboard"),
            ("GET", "/api/reports"),
            ("POST", "/api/ai/reorder-suggestion"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["kind"] == "authentication"

    def test_garbage_token(self, client):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_health_is_public(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["status"] == "degraded"

    def test_health_with_collaborators(self, client, image_store, reorder_advisor):
        assert client.get("/api/health").get_json()["status"] == "healthy"


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:
    def test_login_returns_token_and_permissions(self, client, employee):
        resp = client.post("/api/auth/login", json={"email": "EMPLOYEE@stockpilot.test", "password": "secret123"})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["token"]
        assert data["user"]["role"] == "employee"
        assert "CREATE_ORDERS" in data["user"]["permissions"]
        assert "DELETE_ORDERS" not in data["user"]["permissions"]

    @pytest.mark.parametrize("email,password", [
        ("employee@stockpilot.test", "wrong-password"),
        ("nobody@stockpilot.test", "secret123"),
    ])
    def test_bad_credentials_share_one_message(self, client, employee, email, password):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_token_works_until_logout(self, client, employee):
        token = client.post(
            "/api/auth/login", json={"email": "employee@stockpilot.test", "password": "secret123"}
        ).get_json()["data"]["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["data"]["email"] == "employee@stockpilot.test"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_deactivated_user_loses_access(self, client, admin_headers, employee, employee_headers):
        resp = client.delete(f"/api/admin/users/{employee.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/products", headers=employee_headers).status_code == 401


# =============================================================================
# EMPLOYEE DENIED ADMIN-ONLY OPERATIONS: 403
# =============================================================================


class TestEmployeeDenied:
    def test_cannot_list_users(self, client, employee_headers):
        resp = client.get("/api/admin/users", headers=employee_headers)
        assert resp.status_code == 403
        assert resp.get_json()["details"]["required_permission"] == "MANAGE_USERS"

    def test_cannot_create_users(self, client, employee_headers):
        resp = client.post(
            "/api/admin/users",
            json={"name": "Eve", "email": "eve@stockpilot.test", "password": "secret123", "role": "admin"},
            headers=employee_headers,
        )
        assert resp.status_code == 403
        assert db.session.query(User).filter_by(email="eve@stockpilot.test").count() == 0

    def test_cannot_delete_products(self, client, employee_headers):
        product = make_product("Sencha")
        resp = client.delete(f"/api/products/{product.id}", headers=employee_headers)
        assert resp.status_code == 403

    def test_cannot_delete_customers(self, client, employee_headers, customer):
        resp = client.delete(f"/api/customers/{customer.id}", headers=employee_headers)
        assert resp.status_code == 403

    def test_cannot_delete_or_view_deleted_orders(self, client, employee_headers, admin, customer, dated_product):
        order = order_service.create_order(
            payload={"customer_id": customer.id, "items": [{"product_id": dated_product.id, "quantity": 1}]},
            actor=admin,
        )
        assert client.delete(f"/api/orders/{order['id']}", headers=employee_headers).status_code == 403
        assert client.get("/api/orders/deleted", headers=employee_headers).status_code == 403

    def test_can_do_daily_work(self, client, employee_headers, dated_product):
        assert client.get("/api/products", headers=employee_headers).status_code == 200
        assert client.get("/api/dashboard", headers=employee_headers).status_code == 200
        resp = client.post(
            "/api/inventory/stock-in",
            json={"product_id": dated_product.id, "quantity": 3},
            headers=employee_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# ADMIN PRIVILEGED OPERATIONS
# =============================================================================


class TestAdminAllowed:
    def test_create_and_list_users(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"name": "Nina", "email": "nina@stockpilot.test", "password": "secret123"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["role"] == "employee"

        emails = [u["email"] for u in client.get("/api/admin/users", headers=admin_headers).get_json()["data"]]
        assert emails[0] == "nina@stockpilot.test"

    def test_cannot_delete_self(self, client, admin, admin_headers):
        resp = client.delete(f"/api/admin/users/{admin.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_deleted_user_sessions_revoked(self, client, admin_headers, employee, employee_headers):
        client.delete(f"/api/admin/users/{employee.id}", headers=admin_headers)
        db.session.expire_all()
        tokens = db.session.query(SessionToken).filter_by(user_id=employee.id).all()
        assert tokens and all(t.is_revoked for t in tokens)

    def test_delete_and_view_deleted_orders(self, client, admin_headers, customer, dated_product):
        created = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": dated_product.id, "quantity": 2}]},
            headers=admin_headers,
        ).get_json()["data"]

        assert client.delete(f"/api/orders/{created['id']}", headers=admin_headers).status_code == 200

        deleted = client.get("/api/orders/deleted", headers=admin_headers).get_json()["data"]
        assert [o["id"] for o in deleted["items"]] == [created["id"]]
        listed = client.get("/api/orders", headers=admin_headers).get_json()["data"]
        assert listed["items"] == []


# =============================================================================
# ERROR CONTRACT AND ROUND TRIPS
# =============================================================================


class TestApiContract:
    def test_malformed_json(self, client, admin_headers):
        resp = client.post(
            "/api/orders", data="{not json", content_type="application/json", headers=admin_headers
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["success"] is False
        assert body["kind"] == "validation"

    def test_json_array_body(self, client, admin_headers):
        resp = client.post("/api/categories", json=["Herbal"], headers=admin_headers)
        assert resp.status_code == 400

    def test_validation_errors_by_field(self, client, admin_headers, customer):
        resp = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": 1, "quantity": 0}]},
            headers=admin_headers,
        )
        assert resp.status_code == 422
        assert "items.0.quantity" in resp.get_json()["field_errors"]

    def test_order_round_trip(self, client, admin_headers, customer, dated_product):
        resp = client.post(
            "/api/orders",
            json={
                "customer_id": customer.id,
                "items": [{"product_id": dated_product.id, "quantity": 6}],
                "discount_type": "fixed",
                "discount_value": 500,
                "shipping_fee_cents": 200,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        order = resp.get_json()["data"]
        assert order["total_cents"] == 6000 - 500 + 200

        resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "processing"}, headers=admin_headers)
        assert resp.get_json()["data"]["status"] == "processing"

        resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "pending"}, headers=admin_headers)
        assert resp.get_json()["data"]["status"] == "pending"

        resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "delivered"}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "conflict"

        db.session.expire_all()
        assert db.session.get(Product, dated_product.id).stock == 9

    def test_insufficient_stock(self, client, admin_headers, customer, dated_product):
        resp = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": dated_product.id, "quantity": 40}]},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["shortfall"] == 25
        assert db.session.query(Order).count() == 0

    def test_not_found(self, client, admin_headers):
        resp = client.get("/api/products/999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "not_found"

    def test_product_list_pagination(self, client, employee_headers):
        for name in ("A", "B", "C"):
            make_product(name)
        body = client.get("/api/products?page=1&limit=2", headers=employee_headers).get_json()["data"]
        assert [p["name"] for p in body["items"]] == ["C", "B"]
        assert body["pagination"]["has_next"] is True

    def test_product_create_with_base64_image(self, client, employee_headers, image_store):
        encoded = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()
        resp = client.post(
            "/api/products",
            json={"name": "Sencha", "price_cents": 900, "images": [encoded]},
            headers=employee_headers,
        )
        assert resp.status_code == 201
        assert image_store.uploaded[0][1] == b"png-bytes"
        assert len(resp.get_json()["data"]["images"]) == 1

    def test_product_create_multipart(self, client, employee_headers, image_store):
        resp = client.post(
            "/api/products",
            data={"name": "Sencha", "price_cents": "900", "initial_stock": "4", "images": (io.BytesIO(b"jpg"), "tea.jpg")},
            content_type="multipart/form-data",
            headers=employee_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["stock"] == 4
        assert len(data["images"]) == 1

    def test_bad_base64_image(self, client, employee_headers, image_store):
        resp = client.post(
            "/api/products",
            json={"name": "Sencha", "price_cents": 900, "images": ["***"]},
            headers=employee_headers,
        )
        assert resp.status_code == 422
        assert "images.0" in resp.get_json()["field_errors"]

    def test_movement_limit_validated(self, client, employee_headers):
        resp = client.get("/api/inventory/movements?limit=500", headers=employee_headers)
        assert resp.status_code == 422
