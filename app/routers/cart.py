from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.http_errors import domain_http_exception, stock_http_exception
from app.deps import get_cart_session_id, get_optional_user_id
from app.models.cart import CartItem
from app.models.discount import DiscountCode
from app.schemas.cart import ApplyDiscountPayload, CartItemAdd, CartItemUpdate
from app.services import cart as cart_service
from app.services.catalog import price_per_item, resolve_line
from app.services.discounts import validate_discount_code
from app.services.errors import InsufficientStockError, StorefrontError
from app.services.stock import check_stock_availability
from utils.money import money_float

router = APIRouter(prefix="/api/cart", tags=["cart"])
logger = logging.getLogger(__name__)


def _cart_item_to_dict(item: CartItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product.name if item.product else None,
        "variant_id": item.variant_id,
        "variant_name": item.variant.name if item.variant else None,
        "size_id": item.size_id,
        "size_name": item.size.name if item.size else None,
        "quantity": item.quantity,
        "price_per_item": money_float(item.price_per_item),
        "total_price": money_float(cart_service.line_total(item)),
        "additional_services": [
            {
                "id": link.additional_service.id,
                "name": link.additional_service.name,
                "price": money_float(link.additional_service.price),
            }
            for link in item.services
        ],
    }


def _applied_discount_to_dict(code: Optional[DiscountCode], amount) -> Optional[Dict[str, Any]]:
    if code is None:
        return None
    return {
        "code_id": code.id,
        "code": code.code,
        "description": code.description,
        "discount_type": code.discount_type,
        "discount_value": money_float(code.discount_value),
        "discount_amount": money_float(amount),
    }


def _ensure_stock(db: Session, size_id: int, quantity: int) -> None:
    try:
        ok, available = check_stock_availability(db, size_id, quantity)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    if not ok:
        raise stock_http_exception(
            InsufficientStockError(size_id=size_id, available=available, requested=quantity),
            out_of_stock_message="This size is out of stock",
            insufficient_message="Insufficient stock available",
        )


@router.get("")
def get_cart(
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    summary = cart_service.get_cart_summary(db, cart_session)
    return {
        "items": [_cart_item_to_dict(item) for item in summary.items],
        "total_items": summary.total_items,
        "subtotal": money_float(summary.subtotal),
        "discount_amount": money_float(summary.discount_amount),
        "total_price": money_float(summary.total_price),
        "applied_discount": _applied_discount_to_dict(cart_session.applied_discount_code, summary.discount_amount),
    }


@router.get("/count")
def get_cart_count(
    session_id: str = Depends(get_cart_session_id),
    db: Session = Depends(get_db),
):
    return {"count": cart_service.get_cart_count(db, session_id)}


@router.post("/add", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartItemAdd,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    try:
        line = resolve_line(
            db,
            payload.product_id,
            payload.variant_id,
            payload.size_id,
            payload.additional_service_ids,
        )
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc

    _ensure_stock(db, payload.size_id, payload.quantity)

    item = cart_service.add_cart_item(
        db,
        cart_session.id,
        payload.product_id,
        payload.variant_id,
        payload.size_id,
        payload.quantity,
        payload.additional_service_ids,
        price_per_item(line),
    )
    return {"message": "Item added to cart successfully", "item_id": item.id}


@router.put("/update/{item_id}")
def update_cart_item(
    item_id: int,
    payload: CartItemUpdate,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    try:
        item = cart_service.get_cart_item(db, cart_session.id, item_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc

    _ensure_stock(db, item.size_id, payload.quantity)
    cart_service.update_cart_item_quantity(db, cart_session.id, item_id, payload.quantity)
    return {"message": "Cart item updated successfully"}


@router.delete("/remove/{item_id}")
def remove_from_cart(
    item_id: int,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    try:
        cart_service.remove_cart_item(db, cart_session.id, item_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return {"message": "Item removed from cart successfully"}


@router.post("/clear")
def clear_cart(
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    cart_service.clear_cart(db, cart_session.id)
    return {"message": "Cart cleared successfully"}


@router.post("/discount")
def apply_discount(
    payload: ApplyDiscountPayload,
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    summary = cart_service.get_cart_summary(db, cart_session)
    if not summary.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")

    validation = validate_discount_code(db, payload.code, summary.subtotal, user_id, session_id)
    if not validation.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation.error)

    code = validation.discount_code
    cart_service.apply_discount_to_cart_session(db, cart_session.id, code.id, validation.discount_amount)
    discounted_total = max(summary.subtotal - validation.discount_amount, 0)
    return {
        "code": code.code,
        "description": code.description,
        "discount_type": code.discount_type,
        "discount_value": money_float(code.discount_value),
        "discount_amount": money_float(validation.discount_amount),
        "original_total": money_float(summary.subtotal),
        "discounted_total": money_float(discounted_total),
        "message": "Discount applied successfully",
    }


@router.delete("/discount")
def remove_discount(
    session_id: str = Depends(get_cart_session_id),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    cart_session = cart_service.get_or_create_cart_session(db, session_id, user_id)
    cart_service.remove_discount_from_cart_session(db, cart_session.id)
    return {"message": "Discount removed successfully"}
