from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.deps import require_admin_user
from app.models.cart import CartSession
from app.models.discount import DiscountCode
from app.routers.admin_discounts import router as admin_discounts_router
from app.services.discounts import record_discount_usage
from tests.fixtures_data import HAPPY_PATH_ADMIN, OVER_100_PERCENT_DISCOUNT, STAFF_ADMIN, TEST10_DISCOUNT
from tests.storefront_db import build_session, seed_discount


def _build_client(admin=HAPPY_PATH_ADMIN):
    db = build_session()
    app = FastAPI()
    app.include_router(admin_discounts_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin_user] = lambda: SimpleNamespace(**admin)
    return TestClient(app), db


def test_create_normalizes_code_and_reports_flags():
    client, _ = _build_client()

    response = client.post("/api/admin/discount-codes", json=TEST10_DISCOUNT)

    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "TEST10"
    assert body["discount_value"] == 10.0
    assert body["used_count"] == 0
    assert body["is_expired"] is False
    assert body["is_usage_exceeded"] is False
    assert body["created_by"] == HAPPY_PATH_ADMIN["id"]


def test_duplicate_code_is_conflict_case_insensitive():
    client, _ = _build_client()
    client.post("/api/admin/discount-codes", json=TEST10_DISCOUNT)

    response = client.post("/api/admin/discount-codes", json={**TEST10_DISCOUNT, "code": "Test10"})

    assert response.status_code == 409
    assert response.json()["detail"] == "Discount code already exists"


def test_percentage_over_100_is_rejected():
    client, db = _build_client()

    response = client.post("/api/admin/discount-codes", json=OVER_100_PERCENT_DISCOUNT)

    assert response.status_code == 400
    assert response.json()["detail"] == "Percentage discount cannot exceed 100%"
    assert db.query(DiscountCode).count() == 0


def test_end_date_before_start_date_is_rejected():
    client, _ = _build_client()
    start = datetime.now(timezone.utc)
    payload = {
        **TEST10_DISCOUNT,
        "start_date": start.isoformat(),
        "end_date": (start - timedelta(days=1)).isoformat(),
    }

    response = client.post("/api/admin/discount-codes", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == "End date must be after start date"


def test_list_paginates_and_clamps_limit():
    client, db = _build_client()
    for index in range(3):
        seed_discount(db, code=f"CODE{index}", active=index != 1)

    page = client.get("/api/admin/discount-codes", params={"page": 1, "limit": 500})
    active_only = client.get("/api/admin/discount-codes", params={"active": "true", "limit": 1})

    assert page.status_code == 200
    assert page.json()["limit"] == 100
    assert page.json()["total"] == 3
    assert active_only.json()["total"] == 2
    assert len(active_only.json()["discount_codes"]) == 1


def test_update_changes_fields_and_validates_merged_state():
    client, db = _build_client()
    discount_code = seed_discount(db, code="EDITME", discount_type="fixed_amount", discount_value="150")

    bad = client.put(f"/api/admin/discount-codes/{discount_code.id}", json={"discount_type": "percentage"})
    good = client.put(
        f"/api/admin/discount-codes/{discount_code.id}",
        json={"description": "Spring sale", "max_uses": 5},
    )

    assert bad.status_code == 400
    assert good.status_code == 200
    assert good.json()["description"] == "Spring sale"
    assert good.json()["max_uses"] == 5
    assert good.json()["discount_type"] == "fixed_amount"


def test_null_for_required_field_is_400_and_leaves_code_untouched():
    client, db = _build_client()
    discount_code = seed_discount(db, code="TEST10")

    cleared_flag = client.put(f"/api/admin/discount-codes/{discount_code.id}", json={"active": None})
    cleared_code = client.put(f"/api/admin/discount-codes/{discount_code.id}", json={"code": None})
    cleared_end = client.put(f"/api/admin/discount-codes/{discount_code.id}", json={"end_date": None})

    assert cleared_flag.status_code == 400
    assert "active" in cleared_flag.json()["detail"]
    assert cleared_code.status_code == 400
    assert cleared_end.status_code == 200
    detail = client.get(f"/api/admin/discount-codes/{discount_code.id}").json()
    assert detail["code"] == "TEST10"
    assert detail["active"] is True


def test_get_missing_code_is_404():
    client, _ = _build_client()

    assert client.get("/api/admin/discount-codes/999").status_code == 404
    assert client.put("/api/admin/discount-codes/999", json={"active": False}).status_code == 404
    assert client.delete("/api/admin/discount-codes/999").status_code == 404


def test_usage_endpoint_and_exceeded_flag():
    client, db = _build_client()
    discount_code = seed_discount(db, code="ONCE", usage_type="one_time")
    record_discount_usage(db, discount_code.id, None, "sess-1")

    usage = client.get(f"/api/admin/discount-codes/{discount_code.id}/usage")
    detail = client.get(f"/api/admin/discount-codes/{discount_code.id}")

    assert usage.status_code == 200
    assert [row["session_id"] for row in usage.json()["usage"]] == ["sess-1"]
    assert detail.json()["is_usage_exceeded"] is True
    assert detail.json()["used_count"] == 1


def test_delete_detaches_code_from_carts():
    client, db = _build_client()
    discount_code = seed_discount(db, code="GONE")
    cart = CartSession(session_id="sess-1", applied_discount_code_id=discount_code.id, discount_amount=5)
    db.add(cart)
    db.commit()

    response = client.delete(f"/api/admin/discount-codes/{discount_code.id}")

    assert response.status_code == 200
    db.refresh(cart)
    assert cart.applied_discount_code_id is None
    assert db.query(DiscountCode).count() == 0


def test_staff_role_cannot_manage_discount_codes():
    client, _ = _build_client(admin=STAFF_ADMIN)

    response = client.get("/api/admin/discount-codes")

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"
