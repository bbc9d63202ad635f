from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.http_errors import domain_http_exception
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.schemas.checkout import OrderStatusUpdate
from app.services import orders as order_service
from app.services.errors import StorefrontError

router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"])
logger = logging.getLogger(__name__)

_order_staff = require_role(["admin", "staff"])


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    email: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_order_staff),
):
    orders, total = order_service.list_orders(db, page=page, limit=limit, email=email, status=status_filter)
    return {
        "orders": [order_service.order_to_dict(order, include_session=True) for order in orders],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_order_staff),
):
    try:
        order = order_service.get_order_by_id(db, order_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return order_service.order_to_dict(order, include_session=True)


@router.put("/{order_id}/status")
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(_order_staff),
):
    try:
        order = order_service.update_order_status(db, order_id, payload.status, payload.payment_status)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    logger.info("order status changed by admin_user_id=%s", user.id, extra={"order_id": order.id})
    return order_service.order_to_dict(order, include_session=True)


@router.delete("/{order_id}")
def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(require_role(["admin"])),
):
    try:
        order_service.delete_order(db, order_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return {"message": "Order deleted successfully"}
