"""Order creation from the current cart.

Flow: re-validate the attached discount, reserve stock line by line, write the
order (with the discount usage row) in one transaction, then run the post-commit
follow-up queue (decrement stock, clear cart). Any failure before the commit
releases every reservation made in this attempt.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Optional

from sqlalchemy.orm import Session

from app.core.metrics import request_metrics
from app.models.cart import CartItem, CartSession
from app.models.discount import DiscountCode
from app.models.order import BillingAddress, Order, ShippingAddress
from app.models.order_item import OrderItem, OrderItemService
from app.schemas.checkout import CheckoutRequest
from app.services import stock
from app.services.cart import clear_cart, get_cart_summary, get_or_create_cart_session, line_total
from app.services.discounts import record_discount_usage, validate_discount_code
from app.services.errors import CartEmptyError, DiscountRejectedError, InsufficientStockError, StorefrontError
from app.services.follow_up import FollowUpQueue
from utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    size_id: int
    quantity: int


def generate_public_hash() -> str:
    return secrets.token_hex(16)


def discount_snapshot(discount_code: DiscountCode) -> str:
    if discount_code.description:
        return f"{discount_code.code}: {discount_code.description}"
    return discount_code.code


def _revalidate_discount(
    db: Session,
    cart_session: CartSession,
    subtotal: Decimal,
    user_id: int | None,
    session_id: str,
) -> tuple[Optional[DiscountCode], Decimal]:
    if cart_session.applied_discount_code_id is None:
        return None, ZERO

    discount_code = (
        db.query(DiscountCode).filter(DiscountCode.id == cart_session.applied_discount_code_id).first()
    )
    if discount_code is None:
        raise DiscountRejectedError("Invalid discount code")

    validation = validate_discount_code(
        db,
        discount_code.code,
        subtotal,
        user_id,
        session_id,
        exclude_cart_session_id=cart_session.id,
    )
    if not validation.valid:
        logger.info(
            "checkout aborted: discount no longer valid code_id=%s reason=%s",
            discount_code.id,
            validation.error,
            extra={"discount_code_id": discount_code.id},
        )
        raise DiscountRejectedError(validation.error or "Invalid discount code")
    return discount_code, validation.discount_amount


def release_reservations(db: Session, reservations: list[Reservation]) -> list[str]:
    queue = FollowUpQueue("release-reservations")
    for reservation in reservations:
        queue.add(
            f"release_stock:{reservation.size_id}",
            partial(stock.release_stock, db, reservation.size_id, reservation.quantity),
        )
    return queue.run()


def reserve_cart_stock(db: Session, items: list[CartItem]) -> list[Reservation]:
    """All-or-nothing: on the first failure every hold made here is released."""
    reservations: list[Reservation] = []
    try:
        for item in items:
            ok, available = stock.check_stock_availability(db, item.size_id, item.quantity)
            if not ok:
                request_metrics.increment("stock_conflicts")
                raise InsufficientStockError(size_id=item.size_id, available=available, requested=item.quantity)
            stock.reserve_stock(db, item.size_id, item.quantity)
            reservations.append(Reservation(size_id=item.size_id, quantity=item.quantity))
    except Exception:
        if reservations:
            logger.warning("releasing %s stock reservations after failed reserve", len(reservations))
            release_reservations(db, reservations)
        raise
    return reservations


def _build_order_item(item: CartItem) -> OrderItem:
    variant = item.variant
    color = variant.color if variant is not None else None
    order_item = OrderItem(
        product_id=item.product_id,
        product_name=item.product.name,
        product_description=item.product.description,
        variant_id=item.variant_id,
        variant_name=variant.name,
        variant_color_name=color.name if color is not None else None,
        variant_color_custom=bool(color.custom) if color is not None else False,
        size_id=item.size_id,
        size_name=item.size.name,
        size_dimensions=item.size.dimensions,
        quantity=item.quantity,
        unit_price=to_money(item.price_per_item),
        total_price=line_total(item),
    )
    order_item.services = [
        OrderItemService(
            service_id=link.additional_service.id,
            service_name=link.additional_service.name,
            service_description=link.additional_service.description,
            service_price=to_money(link.additional_service.price),
        )
        for link in item.services
    ]
    return order_item


def _persist_order(
    db: Session,
    items: list[CartItem],
    subtotal: Decimal,
    payload: CheckoutRequest,
    user_id: int | None,
    session_id: str,
    discount_code: Optional[DiscountCode],
    discount_amount: Decimal,
) -> Order:
    shipping_cost = ZERO
    tax_amount = ZERO
    discount_amount = min(to_money(discount_amount), subtotal)
    total_amount = to_money(max(ZERO, subtotal - discount_amount) + shipping_cost + tax_amount)

    order = Order(
        user_id=user_id,
        session_id=session_id,
        public_hash=generate_public_hash(),
        email=str(payload.email),
        phone=payload.phone,
        status="pending",
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax_amount=tax_amount,
        total_amount=total_amount,
        discount_code_id=discount_code.id if discount_code is not None else None,
        discount_amount=discount_amount,
        discount_description=discount_snapshot(discount_code) if discount_code is not None else None,
        payment_method=payload.payment_method,
        payment_status="pending",
        notes=payload.notes,
        requires_invoice=payload.requires_invoice,
        nip=payload.nip,
    )
    order.shipping_address = ShippingAddress(**payload.shipping_address.model_dump())
    order.billing_address = BillingAddress(
        **payload.resolved_billing_address().model_dump(),
        same_as_shipping=payload.same_as_shipping,
    )
    order.items = [_build_order_item(item) for item in items]

    db.add(order)
    db.flush()
    if discount_code is not None:
        # mesma transação do pedido: violação de unicidade desfaz o pedido
        record_discount_usage(db, discount_code.id, user_id, session_id, order.id, commit=False)
    db.commit()
    db.refresh(order)
    return order


def checkout(db: Session, session_id: str, user_id: int | None, payload: CheckoutRequest) -> Order:
    cart_session = get_or_create_cart_session(db, session_id, user_id)
    summary = get_cart_summary(db, cart_session)
    if not summary.items:
        raise CartEmptyError()

    discount_code, discount_amount = _revalidate_discount(db, cart_session, summary.subtotal, user_id, session_id)
    reservations = reserve_cart_stock(db, summary.items)

    try:
        order = _persist_order(
            db,
            summary.items,
            summary.subtotal,
            payload,
            user_id,
            session_id,
            discount_code,
            discount_amount,
        )
    except StorefrontError as exc:
        db.rollback()
        logger.warning("order rejected cart_session_id=%s reason=%s", cart_session.id, exc.message)
        release_reservations(db, reservations)
        raise
    except Exception:
        db.rollback()
        logger.exception("order transaction failed cart_session_id=%s", cart_session.id)
        release_reservations(db, reservations)
        raise

    logger.info(
        "order created order_id=%s total=%s discount=%s items=%s",
        order.id,
        order.total_amount,
        order.discount_amount,
        len(order.items),
        extra={"order_id": order.id, "discount_code_id": order.discount_code_id},
    )
    request_metrics.increment("orders_created")

    follow_up = FollowUpQueue(f"order:{order.id}")
    for reservation in reservations:
        follow_up.add(
            f"decrement_stock:{reservation.size_id}",
            partial(stock.decrement_stock, db, reservation.size_id, reservation.quantity),
        )
    follow_up.add("clear_cart", partial(clear_cart, db, cart_session.id))
    follow_up.run()

    return order
