from decimal import Decimal
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.deps import require_admin_user
from app.models.discount import DiscountCodeUsage
from app.models.order import Order
from app.routers.admin_orders import router as admin_orders_router
from app.routers.admin_stock import router as admin_stock_router
from app.schemas.checkout import CheckoutRequest
from app.services import cart as cart_service
from app.services import stock
from app.services.checkout import checkout
from tests.fixtures_data import CHECKOUT_PAYLOAD, HAPPY_PATH_ADMIN, STAFF_ADMIN
from tests.storefront_db import build_session, seed_discount, seed_product


def _build_client(admin=HAPPY_PATH_ADMIN):
    db = build_session()
    app = FastAPI()
    app.include_router(admin_stock_router)
    app.include_router(admin_orders_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin_user] = lambda: SimpleNamespace(**admin)
    return TestClient(app), db


def _place_order(db, size_ids, session_id="sess-admin", discount_code=None):
    cart_session = cart_service.get_or_create_cart_session(db, session_id)
    for product, variant, size in size_ids:
        cart_service.add_cart_item(db, cart_session.id, product.id, variant.id, size.id, 1, [], Decimal("100"))
    if discount_code is not None:
        cart_service.apply_discount_to_cart_session(db, cart_session.id, discount_code.id, Decimal("10"))
    return checkout(db, session_id, None, CheckoutRequest(**CHECKOUT_PAYLOAD))


def test_stock_endpoints_read_set_and_restock():
    client, db = _build_client(admin=STAFF_ADMIN)
    product, _, size = seed_product(db, stock_quantity=4)
    stock.reserve_stock(db, size.id, 1)

    summary = client.get(f"/api/admin/stock/products/{product.id}")
    single = client.get(f"/api/admin/stock/sizes/{size.id}")
    updated = client.put(f"/api/admin/stock/sizes/{size.id}", json={"stock_quantity": 10})
    restocked = client.post(f"/api/admin/stock/sizes/{size.id}/restock", json={"quantity": 5})

    assert summary.status_code == 200
    assert summary.json()["sizes"][0]["available"] == 3
    assert single.json()["reserved_quantity"] == 1
    assert updated.json()["stock_quantity"] == 10
    assert updated.json()["available"] == 9
    assert restocked.json()["stock_quantity"] == 15


def test_stock_endpoints_validate_input_and_missing_rows():
    client, db = _build_client()
    _, _, size = seed_product(db, use_stock=False)

    assert client.get("/api/admin/stock/sizes/999").status_code == 404
    assert client.get("/api/admin/stock/products/999").status_code == 404
    assert client.put(f"/api/admin/stock/sizes/{size.id}", json={"stock_quantity": -1}).status_code == 422
    restock_untracked = client.post(f"/api/admin/stock/sizes/{size.id}/restock", json={"quantity": 1})
    assert restock_untracked.status_code == 400

    enabled = client.put(f"/api/admin/stock/sizes/{size.id}", json={"stock_quantity": 2, "use_stock": True})
    assert enabled.json()["use_stock"] is True
    assert enabled.json()["available"] == 2


def test_admin_lists_filters_and_updates_orders():
    client, db = _build_client()
    product_row = seed_product(db)
    order = _place_order(db, [product_row])

    listing = client.get("/api/admin/orders", params={"email": "JAN@", "status": "pending"})
    empty = client.get("/api/admin/orders", params={"status": "shipped"})
    detail = client.get(f"/api/admin/orders/{order.id}")
    updated = client.put(
        f"/api/admin/orders/{order.id}/status",
        json={"status": "shipped", "payment_status": "completed"},
    )
    invalid = client.put(f"/api/admin/orders/{order.id}/status", json={"status": "teleported"})

    assert listing.json()["total"] == 1
    assert listing.json()["orders"][0]["session_id"] == "sess-admin"
    assert empty.json()["total"] == 0
    assert detail.json()["public_hash"] == order.public_hash
    assert updated.json()["status"] == "shipped"
    assert updated.json()["payment_status"] == "completed"
    assert invalid.status_code == 400


def test_delete_order_keeps_usage_row_without_order_reference():
    client, db = _build_client()
    product_row = seed_product(db, base_price="100.00")
    discount_code = seed_discount(db, code="TEST10")
    order = _place_order(db, [product_row], discount_code=discount_code)

    response = client.delete(f"/api/admin/orders/{order.id}")

    assert response.status_code == 200
    assert db.query(Order).count() == 0
    usage = db.query(DiscountCodeUsage).one()
    assert usage.order_id is None
    assert client.get(f"/api/admin/orders/{order.id}").status_code == 404


def test_staff_cannot_delete_orders():
    client, db = _build_client(admin=STAFF_ADMIN)
    order = _place_order(db, [seed_product(db)])

    response = client.delete(f"/api/admin/orders/{order.id}")

    assert response.status_code == 403
    assert db.query(Order).count() == 1
