from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.models.cart import CartItem, CartItemService, CartSession
from app.services.errors import CartItemNotFoundError
from utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


@dataclass
class CartSummary:
    cart_session: CartSession
    items: list[CartItem] = field(default_factory=list)
    total_items: int = 0
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO

    @property
    def total_price(self) -> Decimal:
        return max(ZERO, self.subtotal - self.discount_amount)


def calculate_services_hash(service_ids: Iterable[int] | None) -> str:
    """Order-independent key for a bundle of additional services ("" for none)."""
    ids = sorted(set(service_ids or []))
    if not ids:
        return ""
    joined = ",".join(str(service_id) for service_id in ids)
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def line_total(item: CartItem) -> Decimal:
    return to_money(to_money(item.price_per_item) * item.quantity)


def get_cart_session(db: Session, session_id: str) -> Optional[CartSession]:
    return db.query(CartSession).filter(CartSession.session_id == session_id).first()


def get_or_create_cart_session(db: Session, session_id: str, user_id: int | None = None) -> CartSession:
    cart_session = get_cart_session(db, session_id)
    if cart_session is not None:
        if user_id is not None and cart_session.user_id is None:
            try:
                cart_session.user_id = user_id
                db.commit()
                db.refresh(cart_session)
            except Exception:
                db.rollback()
                raise
            logger.info("cart session linked to user cart_session_id=%s", cart_session.id)
        return cart_session

    cart_session = CartSession(session_id=session_id, user_id=user_id, discount_amount=ZERO)
    try:
        db.add(cart_session)
        db.commit()
        db.refresh(cart_session)
    except IntegrityError:
        # outra requisição da mesma sessão criou primeiro
        db.rollback()
        existing = get_cart_session(db, session_id)
        if existing is None:
            raise
        return existing
    except Exception:
        db.rollback()
        raise
    return cart_session


def get_cart_items(db: Session, cart_session_id: int) -> list[CartItem]:
    return (
        db.query(CartItem)
        .options(selectinload(CartItem.services).selectinload(CartItemService.additional_service))
        .filter(CartItem.cart_session_id == cart_session_id)
        .order_by(CartItem.id)
        .all()
    )


def get_cart_item(db: Session, cart_session_id: int, item_id: int) -> CartItem:
    item = (
        db.query(CartItem)
        .filter(CartItem.id == item_id, CartItem.cart_session_id == cart_session_id)
        .first()
    )
    if item is None:
        raise CartItemNotFoundError()
    return item


def get_cart_summary(db: Session, cart_session: CartSession) -> CartSummary:
    items = get_cart_items(db, cart_session.id)
    return CartSummary(
        cart_session=cart_session,
        items=items,
        total_items=sum(item.quantity for item in items),
        subtotal=to_money(sum((line_total(item) for item in items), ZERO)),
        discount_amount=to_money(cart_session.discount_amount),
    )


def get_cart_count(db: Session, session_id: str) -> int:
    cart_session = get_cart_session(db, session_id)
    if cart_session is None:
        return 0
    return sum(item.quantity for item in get_cart_items(db, cart_session.id))


def _find_line(
    db: Session,
    cart_session_id: int,
    product_id: int,
    variant_id: int,
    size_id: int,
    services_hash: str,
) -> Optional[CartItem]:
    return (
        db.query(CartItem)
        .filter(
            CartItem.cart_session_id == cart_session_id,
            CartItem.product_id == product_id,
            CartItem.variant_id == variant_id,
            CartItem.size_id == size_id,
            CartItem.services_hash == services_hash,
        )
        .first()
    )


def add_cart_item(
    db: Session,
    cart_session_id: int,
    product_id: int,
    variant_id: int,
    size_id: int,
    quantity: int,
    service_ids: Iterable[int] | None,
    price_per_item,
) -> CartItem:
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    services_hash = calculate_services_hash(service_ids)

    existing = _find_line(db, cart_session_id, product_id, variant_id, size_id, services_hash)
    if existing is not None:
        return _merge_quantity(db, existing, quantity)

    item = CartItem(
        cart_session_id=cart_session_id,
        product_id=product_id,
        variant_id=variant_id,
        size_id=size_id,
        quantity=quantity,
        price_per_item=to_money(price_per_item),
        services_hash=services_hash,
    )
    item.services = [CartItemService(additional_service_id=service_id) for service_id in sorted(set(service_ids or []))]
    try:
        db.add(item)
        db.commit()
        db.refresh(item)
    except IntegrityError:
        db.rollback()
        existing = _find_line(db, cart_session_id, product_id, variant_id, size_id, services_hash)
        if existing is None:
            raise
        return _merge_quantity(db, existing, quantity)
    except Exception:
        db.rollback()
        raise
    return item


def _merge_quantity(db: Session, item: CartItem, quantity: int) -> CartItem:
    try:
        db.query(CartItem).filter(CartItem.id == item.id).update(
            {CartItem.quantity: CartItem.quantity + quantity},
            synchronize_session=False,
        )
        db.commit()
        db.refresh(item)
    except Exception:
        db.rollback()
        raise
    return item


def update_cart_item_quantity(db: Session, cart_session_id: int, item_id: int, quantity: int) -> CartItem:
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    item = get_cart_item(db, cart_session_id, item_id)
    try:
        item.quantity = quantity
        db.commit()
        db.refresh(item)
    except Exception:
        db.rollback()
        raise
    return item


def remove_cart_item(db: Session, cart_session_id: int, item_id: int) -> None:
    item = get_cart_item(db, cart_session_id, item_id)
    try:
        db.delete(item)
        db.commit()
    except Exception:
        db.rollback()
        raise


def apply_discount_to_cart_session(db: Session, cart_session_id: int, discount_code_id: int, amount) -> None:
    """Attach a code that the caller has just validated. No re-validation here."""
    try:
        db.query(CartSession).filter(CartSession.id == cart_session_id).update(
            {
                CartSession.applied_discount_code_id: discount_code_id,
                CartSession.discount_amount: to_money(amount),
            },
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(
        "discount applied to cart cart_session_id=%s code_id=%s",
        cart_session_id,
        discount_code_id,
        extra={"discount_code_id": discount_code_id},
    )


def remove_discount_from_cart_session(db: Session, cart_session_id: int) -> None:
    try:
        db.query(CartSession).filter(CartSession.id == cart_session_id).update(
            {CartSession.applied_discount_code_id: None, CartSession.discount_amount: ZERO},
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise


def clear_cart(db: Session, cart_session_id: int, *, commit: bool = True) -> None:
    """Delete every item and drop the applied discount in one transaction."""
    try:
        item_ids = [row.id for row in db.query(CartItem.id).filter(CartItem.cart_session_id == cart_session_id)]
        if item_ids:
            db.query(CartItemService).filter(CartItemService.cart_item_id.in_(item_ids)).delete(
                synchronize_session=False
            )
            db.query(CartItem).filter(CartItem.id.in_(item_ids)).delete(synchronize_session=False)
        db.query(CartSession).filter(CartSession.id == cart_session_id).update(
            {CartSession.applied_discount_code_id: None, CartSession.discount_amount: ZERO},
            synchronize_session=False,
        )
        if commit:
            db.commit()
        else:
            db.expire_all()
    except Exception:
        if commit:
            db.rollback()
        raise
