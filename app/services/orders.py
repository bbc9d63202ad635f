import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.models.discount import DiscountCodeUsage
from app.models.order import ORDER_STATUSES, PAYMENT_STATUSES, BillingAddress, Order
from app.models.order_item import OrderItem
from app.services.errors import OrderNotFoundError
from utils.money import money_float

logger = logging.getLogger(__name__)


def _order_query(db: Session):
    return db.query(Order).options(
        selectinload(Order.shipping_address),
        selectinload(Order.billing_address),
        selectinload(Order.items).selectinload(OrderItem.services),
    )


def _address_to_dict(address) -> Optional[Dict[str, Any]]:
    if address is None:
        return None
    data = {
        "first_name": address.first_name,
        "last_name": address.last_name,
        "company": address.company,
        "address_line1": address.address_line1,
        "address_line2": address.address_line2,
        "city": address.city,
        "state_province": address.state_province,
        "postal_code": address.postal_code,
        "country": address.country,
        "phone": address.phone,
    }
    if isinstance(address, BillingAddress):
        data["same_as_shipping"] = bool(address.same_as_shipping)
    return data


def _order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_description": item.product_description,
        "variant_id": item.variant_id,
        "variant_name": item.variant_name,
        "variant_color_name": item.variant_color_name,
        "variant_color_custom": bool(item.variant_color_custom),
        "size_id": item.size_id,
        "size_name": item.size_name,
        "size_dimensions": item.size_dimensions,
        "quantity": item.quantity,
        "unit_price": money_float(item.unit_price),
        "total_price": money_float(item.total_price),
        "services": [
            {
                "service_id": service.service_id,
                "service_name": service.service_name,
                "service_description": service.service_description,
                "service_price": money_float(service.service_price),
            }
            for service in item.services
        ],
    }


def order_to_dict(order: Order, *, include_session: bool = False) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "public_hash": order.public_hash,
        "email": order.email,
        "phone": order.phone,
        "status": order.status,
        "subtotal": money_float(order.subtotal),
        "shipping_cost": money_float(order.shipping_cost),
        "tax_amount": money_float(order.tax_amount),
        "discount_code_id": order.discount_code_id,
        "discount_amount": money_float(order.discount_amount),
        "discount_description": order.discount_description,
        "total_amount": money_float(order.total_amount),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "notes": order.notes,
        "requires_invoice": bool(order.requires_invoice),
        "nip": order.nip,
        "shipping_address": _address_to_dict(order.shipping_address),
        "billing_address": _address_to_dict(order.billing_address),
        "items": [_order_item_to_dict(item) for item in order.items],
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
    if include_session:
        data["session_id"] = order.session_id
    return data


def get_order_by_id(db: Session, order_id: int) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFoundError()
    return order


def get_order_by_hash(db: Session, public_hash: str) -> Order:
    normalized = (public_hash or "").strip().lower()
    order = _order_query(db).filter(Order.public_hash == normalized).first() if normalized else None
    if order is None:
        raise OrderNotFoundError()
    return order


def list_orders(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    email: str | None = None,
    status: str | None = None,
) -> tuple[list[Order], int]:
    query = db.query(Order)
    if email:
        query = query.filter(func.lower(Order.email).contains(email.strip().lower()))
    if status:
        query = query.filter(Order.status == status.strip().lower())
    total = query.count()
    orders = (
        query.options(
            selectinload(Order.shipping_address),
            selectinload(Order.billing_address),
            selectinload(Order.items).selectinload(OrderItem.services),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def list_orders_for_user(db: Session, user_id: int) -> list[Order]:
    return _order_query(db).filter(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc()).all()


def update_order_status(
    db: Session,
    order_id: int,
    status: str,
    payment_status: str | None = None,
) -> Order:
    normalized_status = (status or "").strip().lower()
    if normalized_status not in ORDER_STATUSES:
        raise ValueError(f"Invalid status. Allowed: {', '.join(ORDER_STATUSES)}")
    normalized_payment = None
    if payment_status is not None:
        normalized_payment = payment_status.strip().lower()
        if normalized_payment not in PAYMENT_STATUSES:
            raise ValueError(f"Invalid payment status. Allowed: {', '.join(PAYMENT_STATUSES)}")

    order = get_order_by_id(db, order_id)
    previous = order.status
    try:
        order.status = normalized_status
        if normalized_payment is not None:
            order.payment_status = normalized_payment
        db.commit()
        db.refresh(order)
    except Exception:
        db.rollback()
        raise

    logger.info(
        "order status updated order_id=%s from=%s to=%s",
        order.id,
        previous,
        normalized_status,
        extra={"order_id": order.id},
    )
    return order


def delete_order(db: Session, order_id: int) -> None:
    order = get_order_by_id(db, order_id)
    try:
        # o ledger de uso é append-only: só perde a referência ao pedido
        db.query(DiscountCodeUsage).filter(DiscountCodeUsage.order_id == order_id).update(
            {DiscountCodeUsage.order_id: None},
            synchronize_session=False,
        )
        db.delete(order)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("order deleted order_id=%s", order_id, extra={"order_id": order_id})

