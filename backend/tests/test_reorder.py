"""
Reorder advice and outbound collaborator tests.

The HTTP collaborators are exercised against httpx.MockTransport; nothing
leaves the process.
"""

import hashlib
import json

import httpx
import pytest

from stockpilot.collaborators import (
    CloudImageStore,
    HttpReorderAdvisor,
    ReorderContext,
    parse_suggestion,
)
from stockpilot.errors import InfrastructureError, NotFoundError, ValidationError
from stockpilot.services import order_service, reorder_service

from conftest import make_product


def _sell(actor, customer, product, quantity):
    order_service.create_order(
        payload={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": quantity}]},
        actor=actor,
    )


class TestAverageDailySales:
    def test_no_sales(self, dated_product):
        assert reorder_service.average_daily_sales(dated_product.id) == 0

    def test_sales_over_thirty_days(self, admin, customer, dated_product):
        _sell(admin, customer, dated_product, 6)
        _sell(admin, customer, dated_product, 3)
        assert reorder_service.average_daily_sales(dated_product.id) == 0.3

    def test_stock_in_is_not_a_sale(self, admin, dated_product):
        assert reorder_service.average_daily_sales(dated_product.id, window_days=7) == 0


class TestSuggestReorder:
    def test_context_and_suggestion(self, admin, customer, dated_product, reorder_advisor):
        _sell(admin, customer, dated_product, 6)

        result = reorder_service.suggest_reorder(
            product_id=dated_product.id, lead_time_days=30, safety_stock=5, advisor=reorder_advisor, actor=admin
        )

        assert result["context"] == {
            "product_id": dated_product.id,
            "product_name": "Oolong",
            "average_daily_sales": 0.2,
            "current_stock_level": 9,
            "lead_time_in_days": 30,
            "desired_safety_stock_level": 5,
        }
        # 0.2 * 30 + 5 - 9
        assert result["suggestion"] == {"reorder_quantity": 2, "reasoning": "lead-time demand plus safety stock"}
        assert reorder_advisor.contexts[0].product_name == "Oolong"

    def test_numeric_strings_accepted(self, admin, dated_product, reorder_advisor):
        result = reorder_service.suggest_reorder(
            product_id=str(dated_product.id), lead_time_days="7", safety_stock="20", advisor=reorder_advisor, actor=admin
        )
        assert result["suggestion"]["reorder_quantity"] == 5

    def test_invalid_inputs(self, admin, reorder_advisor):
        with pytest.raises(ValidationError) as exc_info:
            reorder_service.suggest_reorder(
                product_id=None, lead_time_days=-1, safety_stock="many", advisor=reorder_advisor, actor=admin
            )
        assert set(exc_info.value.field_errors) == {"product_id", "lead_time_days", "safety_stock"}

    def test_inactive_product(self, admin, reorder_advisor):
        product = make_product("Retired")
        product.is_active = False
        with pytest.raises(NotFoundError):
            reorder_service.suggest_reorder(
                product_id=product.id, lead_time_days=1, safety_stock=0, advisor=reorder_advisor, actor=admin
            )

    def test_advisor_not_configured(self, admin, dated_product):
        with pytest.raises(InfrastructureError) as exc_info:
            reorder_service.suggest_reorder(
                product_id=dated_product.id, lead_time_days=1, safety_stock=0, advisor=None, actor=admin
            )
        assert exc_info.value.status_code == 503

    def test_endpoint(self, client, employee_headers, dated_product, reorder_advisor):
        resp = client.post(
            "/api/ai/reorder-suggestion",
            json={"product_id": dated_product.id, "lead_time_days": 10, "safety_stock": 20},
            headers=employee_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["suggestion"]["reorder_quantity"] == 5

    def test_endpoint_without_advisor(self, client, employee_headers, dated_product):
        resp = client.post(
            "/api/ai/reorder-suggestion",
            json={"product_id": dated_product.id, "lead_time_days": 10, "safety_stock": 20},
            headers=employee_headers,
        )
        assert resp.status_code == 503
        assert resp.get_json()["kind"] == "infrastructure"


# =============================================================================
# HTTP COLLABORATORS
# =============================================================================


CONTEXT = ReorderContext(
    product_id=7,
    product_name="Oolong",
    average_daily_sales=1.5,
    current_stock_level=4,
    lead_time_in_days=10,
    desired_safety_stock_level=6,
)


class TestHttpReorderAdvisor:
    def test_posts_camel_case_context(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"reorderQuantity": 17, "reasoning": "covers lead time"})

        advisor = HttpReorderAdvisor(url="https://advisor.test/reorder", client=httpx.Client(transport=httpx.MockTransport(handler)))
        suggestion = advisor.suggest_reorder_quantity(CONTEXT)

        assert suggestion.reorder_quantity == 17
        assert seen["url"] == "https://advisor.test/reorder"
        assert seen["body"] == {
            "productId": "7",
            "productName": "Oolong",
            "averageDailySales": 1.5,
            "currentStockLevel": 4,
            "leadTimeInDays": 10,
            "desiredSafetyStockLevel": 6,
        }

    def test_server_error_is_hidden(self):
        advisor = HttpReorderAdvisor(
            url="https://advisor.test/reorder",
            client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))),
        )
        with pytest.raises(InfrastructureError) as exc_info:
            advisor.suggest_reorder_quantity(CONTEXT)
        assert exc_info.value.status_code == 503
        assert "boom" not in exc_info.value.message

    def test_non_json_answer(self):
        advisor = HttpReorderAdvisor(
            url="https://advisor.test/reorder",
            client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))),
        )
        with pytest.raises(InfrastructureError):
            advisor.suggest_reorder_quantity(CONTEXT)


class TestParseSuggestion:
    @pytest.mark.parametrize("body, quantity", [
        ({"reorderQuantity": 3, "reasoning": "ok"}, 3),
        ({"reorder_quantity": 0, "reasoning": "ok"}, 0),
        ({"reorderQuantity": 4.0, "reasoning": "ok"}, 4),
    ])
    def test_accepted(self, body, quantity):
        assert parse_suggestion(body).reorder_quantity == quantity

    @pytest.mark.parametrize("body", [
        None,
        ["reorderQuantity", 3],
        {"reorderQuantity": -1, "reasoning": "no"},
        {"reorderQuantity": 2.5, "reasoning": "no"},
        {"reorderQuantity": True, "reasoning": "no"},
        {"reorderQuantity": "3", "reasoning": "no"},
        {"reorderQuantity": 3},
    ])
    def test_rejected(self, body):
        with pytest.raises(InfrastructureError) as exc_info:
            parse_suggestion(body)
        assert exc_info.value.status_code == 502


class TestCloudImageStore:
    def _store(self, handler):
        return CloudImageStore(
            cloud_name="demo",
            api_key="key123",
            api_secret="s3cret",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

    def test_signature(self):
        store = self._store(lambda request: httpx.Response(200))
        expected = hashlib.sha1(b"folder=teas&timestamp=1700000000s3cret").hexdigest()
        assert store._sign({"timestamp": 1700000000, "folder": "teas"}) == expected

    def test_upload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return httpx.Response(200, json={"secure_url": "https://cdn.test/teas/abc.jpg", "public_id": "teas/abc"})

        stored = self._store(handler).upload(b"jpeg-bytes", "teas")

        assert stored.url == "https://cdn.test/teas/abc.jpg"
        assert stored.public_id == "teas/abc"
        assert seen["path"] == "/v1_1/demo/image/upload"
        assert b"jpeg-bytes" in seen["body"]
        assert b"key123" in seen["body"]

    def test_incomplete_upload_response(self):
        store = self._store(lambda request: httpx.Response(200, json={"public_id": "teas/abc"}))
        with pytest.raises(InfrastructureError):
            store.upload(b"jpeg-bytes", "teas")

    def test_delete_failure(self):
        store = self._store(lambda request: httpx.Response(502))
        with pytest.raises(InfrastructureError):
            store.delete("teas/abc")

    def test_delete(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"result": "ok"})

        self._store(handler).delete("teas/abc")
        assert paths == ["/v1_1/demo/image/destroy"]
