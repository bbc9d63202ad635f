from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from app.core.config import JWT_ALGORITHM, JWT_SECRET_KEY
from app.core.database import get_db
from app.core.metrics import request_metrics
from app.deps import require_admin_user
from app.middleware.cart_session import CartSessionMiddleware
from app.models.discount import DiscountCodeUsage
from app.models.order import Order
from app.routers.admin_discounts import router as admin_discounts_router
from app.routers.cart import router as cart_router
from app.routers.orders import router as orders_router
from app.schemas.checkout import CheckoutRequest
from app.services import cart as cart_service
from app.services import stock
from app.services.checkout import checkout
from app.services.discounts import DiscountValidation
from app.services.errors import CartEmptyError, DiscountAlreadyRedeemedError, InsufficientStockError
from tests.fixtures_data import CHECKOUT_PAYLOAD, HAPPY_PATH_ADMIN, TEST10_DISCOUNT
from tests.storefront_db import build_session, seed_discount, seed_product, seed_user


def _build_app(db):
    app = FastAPI()
    app.add_middleware(CartSessionMiddleware)
    app.include_router(cart_router)
    app.include_router(orders_router)
    app.include_router(admin_discounts_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin_user] = lambda: SimpleNamespace(**HAPPY_PATH_ADMIN)
    return app


def _build_client():
    db = build_session()
    return TestClient(_build_app(db)), db


def _bearer(user_id):
    token = jwt.encode({"sub": str(user_id)}, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def _add(client, product, variant, size, quantity=1, headers=None):
    response = client.post(
        "/api/cart/add",
        json={"product_id": product.id, "variant_id": variant.id, "size_id": size.id, "quantity": quantity},
        headers=headers or {},
    )
    assert response.status_code == 201, response.text
    return response


def _levels(db, *sizes):
    return [stock.get_stock_level(db, size.id) for size in sizes]


def test_end_to_end_test10_order_totals_and_lookups():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="100.00", stock_quantity=5)

    created = client.post("/api/admin/discount-codes", json=TEST10_DISCOUNT)
    assert created.status_code == 201
    assert created.json()["code"] == "TEST10"

    _add(client, product, variant, size)
    assert client.post("/api/cart/discount", json={"code": "TEST10"}).status_code == 200

    response = client.post("/api/orders", json=CHECKOUT_PAYLOAD)

    assert response.status_code == 201, response.text
    order = response.json()
    assert order["subtotal"] == 100.0
    assert order["discount_amount"] == 10.0
    assert order["total_amount"] == 90.0
    assert order["discount_description"] == "TEST10: 10% off"
    assert len(order["public_hash"]) == 32
    assert order["billing_address"]["same_as_shipping"] is True
    assert order["billing_address"]["city"] == "Warszawa"
    assert order["items"][0]["size_dimensions"] == {"width": 50, "height": 70}

    by_id = client.get(f"/api/orders/{order['id']}").json()
    by_hash = client.get(f"/api/orders/by-hash/{order['public_hash']}").json()
    discount_fields = ("discount_code_id", "discount_amount", "discount_description", "total_amount")
    for field in discount_fields:
        assert by_id[field] == by_hash[field] == order[field]

    level = stock.get_stock_level(db, size.id)
    assert (level.stock_quantity, level.reserved_quantity) == (4, 0)
    cart = client.get("/api/cart").json()
    assert cart["items"] == []
    assert cart["applied_discount"] is None
    assert db.query(DiscountCodeUsage).count() == 1


def test_order_is_hidden_from_other_sessions_but_found_by_hash():
    client, db = _build_client()
    product, variant, size = seed_product(db)
    _add(client, product, variant, size)
    order = client.post("/api/orders", json=CHECKOUT_PAYLOAD).json()

    stranger = TestClient(client.app)

    assert stranger.get(f"/api/orders/{order['id']}").status_code == 404
    assert stranger.get(f"/api/orders/by-hash/{order['public_hash']}").status_code == 200
    assert stranger.get("/api/orders/by-hash/" + "0" * 32).status_code == 404


def test_checkout_with_empty_cart_is_rejected():
    client, _ = _build_client()

    response = client.post("/api/orders", json=CHECKOUT_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["detail"] == "Cart is empty"


def test_checkout_requires_billing_address_unless_same_as_shipping():
    client, _ = _build_client()
    payload = {**CHECKOUT_PAYLOAD, "same_as_shipping": False}

    assert client.post("/api/orders", json=payload).status_code == 422


def test_partial_reservation_failure_leaves_stock_levels_unchanged():
    db = build_session()
    first_product, first_variant, first_size = seed_product(db, stock_quantity=5)
    second_product, second_variant, second_size = seed_product(db, stock_quantity=1, name="Mug")
    cart_session = cart_service.get_or_create_cart_session(db, "sess-atomic")
    cart_service.add_cart_item(
        db, cart_session.id, first_product.id, first_variant.id, first_size.id, 2, [], Decimal("100")
    )
    cart_service.add_cart_item(
        db, cart_session.id, second_product.id, second_variant.id, second_size.id, 3, [], Decimal("100")
    )
    before = _levels(db, first_size, second_size)
    conflicts_before = request_metrics.counters().get("stock_conflicts", 0)

    with pytest.raises(InsufficientStockError) as exc_info:
        checkout(db, "sess-atomic", None, CheckoutRequest(**CHECKOUT_PAYLOAD))

    assert exc_info.value.size_id == second_size.id
    assert request_metrics.counters()["stock_conflicts"] == conflicts_before + 1
    assert _levels(db, first_size, second_size) == before
    assert db.query(Order).count() == 0
    assert len(cart_service.get_cart_items(db, cart_session.id)) == 2


def test_insufficient_stock_at_checkout_reports_quantities():
    client, db = _build_client()
    product, variant, size = seed_product(db, stock_quantity=3)
    _add(client, product, variant, size, quantity=3)
    stock.reserve_stock(db, size.id, 2)

    response = client.post("/api/orders", json=CHECKOUT_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "error": "Insufficient stock for one or more items",
        "size_id": size.id,
        "available_stock": 1,
        "requested_quantity": 3,
    }


def test_order_transaction_failure_releases_reservations():
    db = build_session()
    product, variant, size = seed_product(db, stock_quantity=4)
    cart_session = cart_service.get_or_create_cart_session(db, "sess-fail")
    cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 2, [], Decimal("100"))

    with patch("app.services.checkout.generate_public_hash", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            checkout(db, "sess-fail", None, CheckoutRequest(**CHECKOUT_PAYLOAD))

    level = stock.get_stock_level(db, size.id)
    assert (level.stock_quantity, level.reserved_quantity) == (4, 0)
    assert db.query(Order).count() == 0


def test_duplicate_redemption_at_commit_rolls_back_order():
    db = build_session()
    product, variant, size = seed_product(db, stock_quantity=4)
    discount_code = seed_discount(db, code="ONCE", usage_type="one_time")
    cart_session = cart_service.get_or_create_cart_session(db, "sess-race")
    cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 1, [], Decimal("100"))
    cart_service.apply_discount_to_cart_session(db, cart_session.id, discount_code.id, Decimal("10"))
    db.add(DiscountCodeUsage(discount_code_id=discount_code.id, session_id="sess-winner", redemption_key="global"))
    db.commit()

    # a pré-validação passou antes do outro checkout gravar o uso
    stale = DiscountValidation(valid=True, discount_amount=Decimal("10.00"), discount_code=discount_code)
    with patch("app.services.checkout.validate_discount_code", return_value=stale):
        with pytest.raises(DiscountAlreadyRedeemedError):
            checkout(db, "sess-race", None, CheckoutRequest(**CHECKOUT_PAYLOAD))

    level = stock.get_stock_level(db, size.id)
    assert (level.stock_quantity, level.reserved_quantity) == (4, 0)
    assert db.query(Order).count() == 0
    assert db.query(DiscountCodeUsage).count() == 1


def test_discount_invalidated_before_checkout_aborts_order():
    client, db = _build_client()
    product, variant, size = seed_product(db, base_price="100.00")
    discount_code = seed_discount(db, code="SHORT")
    _add(client, product, variant, size)
    client.post("/api/cart/discount", json={"code": "SHORT"})
    discount_code.active = False
    db.commit()

    response = client.post("/api/orders", json=CHECKOUT_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["detail"] == "Discount code is not active"
    assert stock.get_stock_level(db, size.id).reserved_quantity == 0


def test_follow_up_failure_does_not_fail_the_order(caplog):
    db = build_session()
    product, variant, size = seed_product(db, stock_quantity=4)
    cart_session = cart_service.get_or_create_cart_session(db, "sess-follow")
    cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 1, [], Decimal("100"))

    with patch("app.services.checkout.clear_cart", side_effect=RuntimeError("cart store down")):
        order = checkout(db, "sess-follow", None, CheckoutRequest(**CHECKOUT_PAYLOAD))

    assert order.id is not None
    level = stock.get_stock_level(db, size.id)
    assert (level.stock_quantity, level.reserved_quantity) == (3, 0)
    assert len(cart_service.get_cart_items(db, cart_session.id)) == 1
    assert any("clear_cart failed" in record.getMessage() for record in caplog.records)


def test_second_checkout_after_success_sees_empty_cart():
    db = build_session()
    product, variant, size = seed_product(db)
    cart_session = cart_service.get_or_create_cart_session(db, "sess-double")
    cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 1, [], Decimal("100"))

    checkout(db, "sess-double", None, CheckoutRequest(**CHECKOUT_PAYLOAD))
    with pytest.raises(CartEmptyError):
        checkout(db, "sess-double", None, CheckoutRequest(**CHECKOUT_PAYLOAD))


def test_once_per_user_code_after_order_blocks_same_user_only():
    client, db = _build_client()
    first = seed_user(db, email="first@example.com")
    second = seed_user(db, email="second@example.com")
    product, variant, size = seed_product(db, base_price="100.00")
    seed_discount(db, code="MEMBERS", usage_type="once_per_user")

    _add(client, product, variant, size, headers=_bearer(first.id))
    applied = client.post("/api/cart/discount", json={"code": "MEMBERS"}, headers=_bearer(first.id))
    assert applied.status_code == 200
    ordered = client.post("/api/orders", json=CHECKOUT_PAYLOAD, headers=_bearer(first.id))
    assert ordered.status_code == 201
    assert ordered.json()["user_id"] == first.id

    again = TestClient(client.app)
    _add(again, product, variant, size, headers=_bearer(first.id))
    repeated = again.post("/api/cart/discount", json={"code": "MEMBERS"}, headers=_bearer(first.id))
    assert repeated.status_code == 400
    assert repeated.json()["detail"] == "You have already used this discount code"

    other = TestClient(client.app)
    _add(other, product, variant, size, headers=_bearer(second.id))
    assert other.post("/api/cart/discount", json={"code": "MEMBERS"}, headers=_bearer(second.id)).status_code == 200

    history = client.get("/api/user/orders", headers=_bearer(first.id))
    assert history.status_code == 200
    assert [order["id"] for order in history.json()["orders"]] == [ordered.json()["id"]]
    assert client.get("/api/user/orders").status_code == 401
