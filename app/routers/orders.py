from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.http_errors import domain_http_exception, stock_http_exception
from app.deps import get_cart_session_id, get_current_user, get_optional_user_id
from app.models.user import User
from app.schemas.checkout import CheckoutRequest
from app.services.checkout import checkout
from app.services.errors import InsufficientStockError, StorefrontError
from app.services.orders import get_order_by_hash, get_order_by_id, list_orders_for_user, order_to_dict

router = APIRouter(tags=["orders"])
logger = logging.getLogger(__name__)


@router.post("/api/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CheckoutRequest,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    try:
        order = checkout(db, session_id, user_id, payload)
    except InsufficientStockError as exc:
        raise stock_http_exception(
            exc,
            out_of_stock_message="One or more items are out of stock",
            insufficient_message="Insufficient stock for one or more items",
        ) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return order_to_dict(order)


@router.get("/api/orders/by-hash/{public_hash}")
def get_order_by_public_hash(public_hash: str, db: Session = Depends(get_db)):
    try:
        order = get_order_by_hash(db, public_hash)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return order_to_dict(order)


@router.get("/api/orders/{order_id}")
def get_order(
    order_id: int,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    try:
        order = get_order_by_id(db, order_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc

    owns_by_user = user_id is not None and order.user_id == user_id
    owns_by_session = order.session_id == session_id
    if not (owns_by_user or owns_by_session):
        # 404 para não revelar pedidos de terceiros
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order_to_dict(order)


@router.get("/api/user/orders")
def get_user_orders(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    orders = list_orders_for_user(db, user.id)
    return {"orders": [order_to_dict(order) for order in orders]}
