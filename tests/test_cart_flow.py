from decimal import Decimal
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.middleware.cart_session import CartSessionMiddleware, read_session_id
from app.models.cart import CartItem, CartItemService
from app.routers.cart import router as cart_router
from app.services import cart as cart_service
from app.services.discounts import LOGIN_REQUIRED
from tests.storefront_db import build_session, seed_discount, seed_product, seed_service, seed_user


def _build_client():
    db = build_session()
    app = FastAPI()
    app.add_middleware(CartSessionMiddleware)
    app.include_router(cart_router)
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app), db


def _add_payload(product, variant, size, quantity=1, services=()):
    return {
        "product_id": product.id,
        "variant_id": variant.id,
        "size_id": size.id,
        "quantity": quantity,
        "additional_service_ids": list(services),
    }


def test_services_hash_is_order_independent_and_empty_for_no_services():
    assert cart_service.calculate_services_hash([3, 1, 2]) == cart_service.calculate_services_hash([2, 3, 1, 1])
    assert cart_service.calculate_services_hash([1, 2]) != cart_service.calculate_services_hash([1])
    assert cart_service.calculate_services_hash([]) == ""
    assert cart_service.calculate_services_hash(None) == ""


def test_first_request_issues_signed_session_cookie():
    client, _ = _build_client()

    response = client.get("/api/cart/count")

    assert response.status_code == 200
    assert response.json() == {"count": 0}
    cookie = response.cookies.get("cart_session")
    session_id = read_session_id(cookie)
    assert session_id is not None
    assert len(session_id) == 64


def test_tampered_session_cookie_is_replaced():
    client, _ = _build_client()
    client.cookies.set("cart_session", "not-a-signed-value")

    response = client.get("/api/cart/count")

    assert response.status_code == 200
    assert read_session_id(response.cookies.get("cart_session")) is not None


def test_same_line_merges_and_different_service_bundle_is_new_line():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="40.00")
    wrap = seed_service(db, price="5.00")

    first = client.post("/api/cart/add", json=_add_payload(product, variant, size, quantity=1))
    second = client.post("/api/cart/add", json=_add_payload(product, variant, size, quantity=2))
    third = client.post("/api/cart/add", json=_add_payload(product, variant, size, services=[wrap.id]))

    assert first.status_code == 201
    assert first.json()["message"] == "Item added to cart successfully"
    assert second.json()["item_id"] == first.json()["item_id"]
    assert third.json()["item_id"] != first.json()["item_id"]

    cart = client.get("/api/cart").json()
    assert len(cart["items"]) == 2
    assert cart["total_items"] == 4
    assert cart["subtotal"] == 165.0
    assert cart["items"][1]["price_per_item"] == 45.0
    assert client.get("/api/cart/count").json() == {"count": 4}


def test_custom_color_adds_ten_percent():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="50.00", custom_color=True)

    client.post("/api/cart/add", json=_add_payload(product, variant, size))

    assert client.get("/api/cart").json()["items"][0]["price_per_item"] == 55.0


def test_add_rejects_out_of_stock_and_insufficient_stock():
    client, db = _build_client()
    product, variant, size = seed_product(db, stock_quantity=0)
    other_product, other_variant, other_size = seed_product(db, stock_quantity=2, name="Mug")

    out_of_stock = client.post("/api/cart/add", json=_add_payload(product, variant, size))
    insufficient = client.post(
        "/api/cart/add",
        json=_add_payload(other_product, other_variant, other_size, quantity=3),
    )

    assert out_of_stock.status_code == 400
    assert out_of_stock.json()["detail"] == {"error": "This size is out of stock", "size_id": size.id}
    assert insufficient.status_code == 400
    assert insufficient.json()["detail"] == {
        "error": "Insufficient stock available",
        "size_id": other_size.id,
        "available_stock": 2,
        "requested_quantity": 3,
    }


def test_add_rejects_size_from_other_product():
    client, db = _build_client()
    product, variant, _ = seed_product(db)
    _, _, foreign_size = seed_product(db, name="Mug")

    response = client.post(
        "/api/cart/add",
        json={"product_id": product.id, "variant_id": variant.id, "size_id": foreign_size.id, "quantity": 1},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid size for this product"


def test_update_and_remove_item():
    client, db = _build_client()
    product, variant, size = seed_product(db, stock_quantity=5)
    item_id = client.post("/api/cart/add", json=_add_payload(product, variant, size)).json()["item_id"]

    too_many = client.put(f"/api/cart/update/{item_id}", json={"quantity": 6})
    updated = client.put(f"/api/cart/update/{item_id}", json={"quantity": 3})

    assert too_many.status_code == 400
    assert updated.status_code == 200
    assert client.get("/api/cart/count").json() == {"count": 3}

    assert client.delete(f"/api/cart/remove/{item_id}").status_code == 200
    assert client.delete(f"/api/cart/remove/{item_id}").status_code == 404


def test_apply_discount_on_empty_cart_is_rejected():
    client, db = _build_client()
    seed_discount(db, code="TEST10")

    response = client.post("/api/cart/discount", json={"code": "TEST10"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Cart is empty"


def test_apply_and_remove_discount():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="100.00")
    seed_discount(db, code="TEST10")
    client.post("/api/cart/add", json=_add_payload(product, variant, size))

    invalid = client.post("/api/cart/discount", json={"code": "WRONG"})
    applied = client.post("/api/cart/discount", json={"code": " test10 "})

    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid discount code"
    assert applied.status_code == 200
    assert applied.json() == {
        "code": "TEST10",
        "description": "TEST10 promo",
        "discount_type": "percentage",
        "discount_value": 10.0,
        "discount_amount": 10.0,
        "original_total": 100.0,
        "discounted_total": 90.0,
        "message": "Discount applied successfully",
    }
    cart = client.get("/api/cart").json()
    assert cart["applied_discount"]["code"] == "TEST10"
    assert cart["total_price"] == 90.0

    assert client.delete("/api/cart/discount").status_code == 200
    cart = client.get("/api/cart").json()
    assert cart["applied_discount"] is None
    assert cart["discount_amount"] == 0.0


def test_once_per_user_code_requires_login_on_apply():
    client, db = _build_client()
    product, variant, size = seed_product(db)
    seed_discount(db, code="MEMBERS", usage_type="once_per_user")
    client.post("/api/cart/add", json=_add_payload(product, variant, size))

    response = client.post("/api/cart/discount", json={"code": "MEMBERS"})

    assert response.status_code == 400
    assert response.json()["detail"] == LOGIN_REQUIRED


def test_clear_cart_drops_items_and_discount_and_new_items_do_not_inherit_it():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="100.00")
    seed_discount(db, code="TEST10")
    client.post("/api/cart/add", json=_add_payload(product, variant, size))
    client.post("/api/cart/discount", json={"code": "TEST10"})

    assert client.post("/api/cart/clear").status_code == 200

    cart = client.get("/api/cart").json()
    assert cart["items"] == []
    assert cart["applied_discount"] is None
    assert cart["discount_amount"] == 0.0

    client.post("/api/cart/add", json=_add_payload(product, variant, size))
    cart = client.get("/api/cart").json()
    assert cart["applied_discount"] is None
    assert cart["total_price"] == 100.0


def test_clear_cart_failure_rolls_back_everything():
    db = build_session()
    product, variant, size = seed_product(db)
    wrap = seed_service(db)
    discount_code = seed_discount(db)
    cart_session = cart_service.get_or_create_cart_session(db, "sess-clear")
    cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 1, [wrap.id], Decimal("105"))
    cart_service.apply_discount_to_cart_session(db, cart_session.id, discount_code.id, Decimal("10.50"))

    with patch.object(db, "commit", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            cart_service.clear_cart(db, cart_session.id)

    db.refresh(cart_session)
    assert db.query(CartItem).count() == 1
    assert db.query(CartItemService).count() == 1
    assert cart_session.applied_discount_code_id == discount_code.id
    assert cart_session.discount_amount == Decimal("10.50")


def test_cart_session_links_to_user_on_first_authenticated_request():
    db = build_session()
    user = seed_user(db)
    cart_session = cart_service.get_or_create_cart_session(db, "sess-link")
    assert cart_session.user_id is None

    linked = cart_service.get_or_create_cart_session(db, "sess-link", user_id=user.id)

    assert linked.id == cart_session.id
    assert linked.user_id == user.id


def test_invalid_bearer_token_is_treated_as_guest():
    client, db = _build_client()
    product, variant, size = seed_product(db)

    response = client.post(
        "/api/cart/add",
        json=_add_payload(product, variant, size),
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 201
    session_id = read_session_id(response.cookies.get("cart_session"))
    assert cart_service.get_cart_session(db, session_id).user_id is None
