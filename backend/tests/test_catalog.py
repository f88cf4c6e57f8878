"""
Product and category service tests.
"""

from datetime import timedelta

import pytest

from stockpilot.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from stockpilot.extensions import db
from stockpilot.models import InventoryMovement, Product
from stockpilot.services import (
    categories_service,
    customer_categories_service,
    customers_service,
    products_service,
)
from stockpilot.time_utils import today

from conftest import make_product


class TestCreateProduct:
    def test_opening_stock_becomes_a_batch(self, admin):
        expiry = today() + timedelta(days=120)
        product = products_service.create_product(
            payload={"name": "Sencha", "price_cents": 1200, "cost_cents": 500, "initial_stock": 10,
                     "expiry_date": expiry.isoformat()},
            actor=admin,
        )

        assert product["stock"] == 10
        assert [b["remaining_quantity"] for b in product["batches"]] == [10]
        assert product["batches"][0]["expiry_date"] == expiry.isoformat()
        assert [h["price_cents"] for h in product["price_history"]] == [1200]
        movement = db.session.query(InventoryMovement).one()
        assert movement.type == "stock-in"
        assert movement.notes == "Opening stock"

    def test_without_opening_stock(self, admin):
        product = products_service.create_product(payload={"name": "Sencha", "price_cents": 1200}, actor=admin)
        assert product["stock"] == 0
        assert product["batches"] == []
        assert db.session.query(InventoryMovement).count() == 0

    def test_field_errors(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            products_service.create_product(
                payload={"price_cents": -5, "initial_stock": -1, "warehouse": "B"}, actor=admin
            )
        errors = exc_info.value.field_errors
        assert "initial_stock" in errors

        with pytest.raises(ValidationError) as exc_info:
            products_service.create_product(payload={"price_cents": -5, "warehouse": "B"}, actor=admin)
        errors = exc_info.value.field_errors
        assert errors["name"] == ["is required"]
        assert errors["warehouse"] == ["is not allowed"]

    def test_negative_price_rejected(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            products_service.create_product(payload={"name": "Sencha", "price_cents": -5}, actor=admin)
        assert "price_cents" in exc_info.value.field_errors

    def test_duplicate_sku(self, admin):
        make_product("Sencha", sku="TEA-001")
        with pytest.raises(ConflictError):
            products_service.create_product(
                payload={"name": "Other", "price_cents": 100, "sku": "TEA-001"}, actor=admin
            )

    def test_category_name_is_copied(self, admin):
        category = categories_service.create_category(payload={"name": "Green tea"}, actor=admin)
        product = products_service.create_product(
            payload={"name": "Sencha", "price_cents": 100, "category_id": category["id"]}, actor=admin
        )
        assert product["category_name"] == "Green tea"

    def test_images_uploaded(self, admin, image_store):
        product = products_service.create_product(
            payload={"name": "Sencha", "price_cents": 100},
            actor=admin,
            image_store=image_store,
            images=[b"\x89PNG one", b"\x89PNG two"],
        )
        assert len(product["images"]) == 2
        assert product["images"][0]["url"].startswith("https://images.test/stockpilot_products/")

    def test_failed_write_discards_uploaded_images(self, admin, image_store):
        with pytest.raises(ValidationError):
            products_service.create_product(
                payload={"name": "Sencha", "price_cents": 100, "category_id": 999},
                actor=admin,
                image_store=image_store,
                images=[b"img"],
            )
        assert image_store.deleted == [image_store.uploaded[0][0]]
        assert db.session.query(Product).count() == 0

    def test_images_need_a_store(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            products_service.create_product(
                payload={"name": "Sencha", "price_cents": 100}, actor=admin, images=[b"img"]
            )
        assert "images" in exc_info.value.field_errors


class TestUpdateProduct:
    def test_price_change_is_recorded(self, admin):
        product = make_product("Sencha", price_cents=1000)
        updated = products_service.update_product(
            product_id=product.id, payload={"price_cents": 1100, "name": "Sencha Premium"}, actor=admin
        )
        assert updated["name"] == "Sencha Premium"
        assert [h["price_cents"] for h in updated["price_history"]] == [1100]

    def test_same_price_not_recorded(self, admin):
        product = make_product("Sencha", price_cents=1000)
        updated = products_service.update_product(product_id=product.id, payload={"price_cents": 1000}, actor=admin)
        assert updated["price_history"] == []

    def test_stock_cannot_be_set_directly(self, admin):
        product = make_product("Sencha")
        with pytest.raises(ValidationError) as exc_info:
            products_service.update_product(product_id=product.id, payload={"stock": 99}, actor=admin)
        assert "stock" in exc_info.value.field_errors

    def test_remove_image(self, admin, image_store):
        created = products_service.create_product(
            payload={"name": "Sencha", "price_cents": 100},
            actor=admin,
            image_store=image_store,
            images=[b"a", b"b"],
        )
        first = created["images"][0]

        updated = products_service.update_product(
            product_id=created["id"],
            payload={},
            actor=admin,
            image_store=image_store,
            remove_image_ids=[first["id"]],
        )
        assert [img["id"] for img in updated["images"]] == [created["images"][1]["id"]]
        assert image_store.deleted == [first["public_id"]]

    def test_foreign_image_id_rejected(self, admin):
        product = make_product("Sencha")
        with pytest.raises(ValidationError):
            products_service.update_product(
                product_id=product.id, payload={}, actor=admin, remove_image_ids=[12345]
            )


class TestDeleteProduct:
    def test_employee_cannot_delete(self, employee):
        product = make_product("Sencha")
        with pytest.raises(PermissionDeniedError):
            products_service.delete_product(product_id=product.id, actor=employee)

    def test_delete_deactivates_and_clears_images(self, admin, image_store):
        created = products_service.create_product(
            payload={"name": "Sencha", "price_cents": 100}, actor=admin, image_store=image_store, images=[b"a"]
        )
        products_service.delete_product(product_id=created["id"], actor=admin, image_store=image_store)

        assert db.session.get(Product, created["id"]).is_active is False
        assert image_store.deleted == [created["images"][0]["public_id"]]
        with pytest.raises(NotFoundError):
            products_service.get_product(product_id=created["id"])
        assert products_service.list_products()["pagination"]["total"] == 0


class TestListProducts:
    def test_stock_status_filters(self, admin):
        make_product("Out", low_stock_threshold=5)
        make_product("Low", low_stock_threshold=5, batches=[(2, None)], actor=admin)
        make_product("Plenty", low_stock_threshold=5, batches=[(50, None)], actor=admin)

        def names(status):
            return sorted(p["name"] for p in products_service.list_products(filters={"stock_status": status})["items"])

        assert names("low") == ["Low"]
        assert names("inStock") == ["Low", "Plenty"]
        assert names("outOfStock") == ["Out"]
        assert names("all") == ["Low", "Out", "Plenty"]

    def test_unknown_stock_status(self, db_session):
        with pytest.raises(ValidationError):
            products_service.list_products(filters={"stock_status": "some"})

    def test_search_and_category(self, admin):
        category = categories_service.create_category(payload={"name": "Herbal"}, actor=admin)
        products_service.create_product(
            payload={"name": "Chamomile", "price_cents": 100, "category_id": category["id"]}, actor=admin
        )
        make_product("Sencha", sku="GRN-1")

        assert [p["name"] for p in products_service.list_products(filters={"search": "grn"})["items"]] == ["Sencha"]
        assert [p["name"] for p in products_service.list_products(filters={"category": "herb"})["items"]] == ["Chamomile"]

    def test_newest_first_with_pagination(self, db_session):
        for name in ("A", "B", "C"):
            make_product(name)
        page = products_service.list_products(filters={"page": 2, "limit": 2})
        assert [p["name"] for p in page["items"]] == ["A"]
        assert page["pagination"] == {
            "page": 2, "per_page": 2, "total": 3, "total_pages": 2, "has_next": False, "has_prev": True,
        }


class TestCategories:
    def test_duplicate_name(self, admin):
        categories_service.create_category(payload={"name": "Herbal"}, actor=admin)
        with pytest.raises(ConflictError):
            categories_service.create_category(payload={"name": "Herbal"}, actor=admin)

    def test_rename_refreshes_products(self, admin):
        category = categories_service.create_category(payload={"name": "Herbal"}, actor=admin)
        product = products_service.create_product(
            payload={"name": "Chamomile", "price_cents": 100, "category_id": category["id"]}, actor=admin
        )

        categories_service.update_category(category_id=category["id"], payload={"name": "Herbal infusions"}, actor=admin)

        assert products_service.get_product(product_id=product["id"])["category_name"] == "Herbal infusions"

    def test_delete_in_use_refused(self, admin):
        category = categories_service.create_category(payload={"name": "Herbal"}, actor=admin)
        products_service.create_product(
            payload={"name": "Chamomile", "price_cents": 100, "category_id": category["id"]}, actor=admin
        )
        with pytest.raises(ConflictError):
            categories_service.delete_category(category_id=category["id"], actor=admin)

    def test_list_sorted_by_name(self, admin):
        for name in ("Oolong", "Black", "Green"):
            categories_service.create_category(payload={"name": name}, actor=admin)
        listed = categories_service.list_categories()
        assert [c["name"] for c in listed["items"]] == ["Black", "Green", "Oolong"]


class TestCustomerCategoryCodes:
    @pytest.mark.parametrize("name, expected", [
        ("Wholesale buyers", "WHOLESALE_BUYERS"),
        ("  vip  ", "VIP"),
        ("Trà xanh 2024", "TR_XANH"),
        ("123", "CATEGORY"),
        (None, "CATEGORY"),
    ])
    def test_code_from_name(self, name, expected):
        assert customer_categories_service.code_from_name(name) == expected

    def test_long_names_are_cut(self):
        assert len(customer_categories_service.code_from_name("a" * 50)) == 20

    @pytest.mark.parametrize("index, expected", [(0, "A"), (25, "Z"), (26, "AA"), (27, "AB")])
    def test_letter_suffix(self, index, expected):
        assert customer_categories_service.letter_suffix(index) == expected

    def test_generated_codes_are_unique(self, admin):
        first = customer_categories_service.create_customer_category(payload={"name": "Wholesale"}, actor=admin)
        second = customer_categories_service.create_customer_category(payload={"name": "wholesale"}, actor=admin)
        third = customer_categories_service.create_customer_category(payload={"name": "WHOLESALE"}, actor=admin)
        assert [first["code"], second["code"], third["code"]] == ["WHOLESALE", "WHOLESALE_A", "WHOLESALE_B"]

    def test_explicit_code_is_upper_cased(self, admin):
        created = customer_categories_service.create_customer_category(
            payload={"name": "Retail", "code": "retail_shop"}, actor=admin
        )
        assert created["code"] == "RETAIL_SHOP"

    def test_explicit_duplicate_code(self, admin):
        customer_categories_service.create_customer_category(payload={"name": "Retail", "code": "RETAIL"}, actor=admin)
        with pytest.raises(ConflictError):
            customer_categories_service.create_customer_category(
                payload={"name": "Other", "code": "RETAIL"}, actor=admin
            )

    def test_invalid_code(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            customer_categories_service.create_customer_category(
                payload={"name": "Retail", "code": "RETAIL-1"}, actor=admin
            )
        assert "code" in exc_info.value.field_errors

    def test_active_only_listing(self, admin):
        customer_categories_service.create_customer_category(payload={"name": "Retail"}, actor=admin)
        customer_categories_service.create_customer_category(payload={"name": "Old", "is_active": False}, actor=admin)

        assert len(customer_categories_service.list_customer_categories()) == 2
        active = customer_categories_service.list_customer_categories(include_inactive=False)
        assert [c["name"] for c in active] == ["Retail"]

    def test_delete_in_use_refused(self, admin):
        category = customer_categories_service.create_customer_category(payload={"name": "Retail"}, actor=admin)
        customers_service.create_customer(
            payload={"name": "Lan", "customer_category_id": category["id"]}, actor=admin
        )
        with pytest.raises(ConflictError):
            customer_categories_service.delete_customer_category(category_id=category["id"], actor=admin)

    def test_employees_manage_customer_categories(self, employee):
        created = customer_categories_service.create_customer_category(payload={"name": "Retail"}, actor=employee)
        assert created["code"] == "RETAIL"
