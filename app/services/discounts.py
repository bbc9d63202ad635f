"""Discount codes: validation, redemption ledger and admin maintenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.metrics import request_metrics
from app.models.cart import CartSession
from app.models.discount import DISCOUNT_TYPES, USAGE_TYPES, DiscountCode, DiscountCodeUsage
from app.models.order import Order
from app.services.errors import (
    DiscountAlreadyRedeemedError,
    DiscountCodeExistsError,
    DiscountCodeNotFoundError,
)
from utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

INVALID_CODE = "Invalid discount code"
LOGIN_REQUIRED = "This discount code requires you to be logged in. Please sign in to use this discount."
ALREADY_USED = "Discount code has already been used"
USAGE_LIMIT_REACHED = "Discount code usage limit reached"

_EDITABLE_FIELDS = (
    "code",
    "description",
    "discount_type",
    "discount_value",
    "min_order_amount",
    "usage_type",
    "max_uses",
    "active",
    "start_date",
    "end_date",
)
# colunas NOT NULL: null explícito no payload é erro de validação
_REQUIRED_FIELDS = ("code", "discount_type", "discount_value", "usage_type", "active")


@dataclass
class DiscountValidation:
    valid: bool
    error: Optional[str] = None
    discount_amount: Decimal = ZERO
    discount_code: Optional[DiscountCode] = None


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite devolve datetimes sem tzinfo
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def calculate_discount_amount(discount_code: DiscountCode, cart_total) -> Decimal:
    total = to_money(cart_total)
    value = to_money(discount_code.discount_value)
    if discount_code.discount_type == "percentage":
        return to_money(total * value / Decimal("100"))
    return min(value, total)


def get_discount_code(db: Session, discount_code_id: int) -> DiscountCode:
    discount_code = db.query(DiscountCode).filter(DiscountCode.id == discount_code_id).first()
    if discount_code is None:
        raise DiscountCodeNotFoundError()
    return discount_code


def get_discount_code_by_code(db: Session, code: str) -> Optional[DiscountCode]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return db.query(DiscountCode).filter(func.upper(DiscountCode.code) == normalized).first()


def _once_per_user_violation(
    db: Session,
    discount_code: DiscountCode,
    user_id: int | None,
    session_id: str,
    exclude_cart_session_id: int | None,
) -> Optional[str]:
    usage_query = db.query(DiscountCodeUsage.id).filter(DiscountCodeUsage.discount_code_id == discount_code.id)
    cart_query = db.query(CartSession.id).filter(CartSession.applied_discount_code_id == discount_code.id)
    if exclude_cart_session_id is not None:
        cart_query = cart_query.filter(CartSession.id != exclude_cart_session_id)

    if user_id is not None:
        if usage_query.filter(DiscountCodeUsage.user_id == user_id).first():
            return "You have already used this discount code"
        if cart_query.filter(CartSession.user_id == user_id).first():
            return "This discount code is already applied to your cart"
        return None

    if usage_query.filter(DiscountCodeUsage.session_id == session_id).first():
        return "This discount code has already been used"
    if cart_query.filter(CartSession.session_id == session_id).first():
        return "This discount code is already applied to a cart session"
    return None


def validate_discount_code(
    db: Session,
    code: str,
    cart_total,
    user_id: int | None,
    session_id: str,
    *,
    exclude_cart_session_id: int | None = None,
    now: datetime | None = None,
) -> DiscountValidation:
    """Check a code against the current cart total and identity.

    Read-only: safe to call once for display and again at checkout. The first
    failing rule wins. ``exclude_cart_session_id`` removes one cart from the
    "already applied" check so checkout does not trip over its own attachment.
    """
    discount_code = get_discount_code_by_code(db, code)
    if discount_code is None:
        return DiscountValidation(valid=False, error=INVALID_CODE)

    def _reject(message: str) -> DiscountValidation:
        return DiscountValidation(valid=False, error=message, discount_code=discount_code)

    if not discount_code.active:
        return _reject("Discount code is not active")

    current = now or _utcnow()
    start_date = _as_utc(discount_code.start_date)
    end_date = _as_utc(discount_code.end_date)
    if start_date is not None and current < start_date:
        return _reject("Discount code is not yet valid")
    if end_date is not None and current > end_date:
        return _reject("Discount code has expired")

    total = to_money(cart_total)
    min_order_amount = to_money(discount_code.min_order_amount)
    if total < min_order_amount:
        return _reject(f"Minimum order amount of {min_order_amount:.2f} required")

    usage_type = discount_code.usage_type
    if usage_type == "one_time":
        if (discount_code.used_count or 0) > 0:
            return _reject(ALREADY_USED)
    elif usage_type == "once_per_user":
        # guest não pode usar: once-per-user não se sustenta em sessão anônima
        if user_id is None:
            return _reject(LOGIN_REQUIRED)
        violation = _once_per_user_violation(db, discount_code, user_id, session_id, exclude_cart_session_id)
        if violation:
            return _reject(violation)
    elif usage_type == "unlimited":
        if discount_code.max_uses is not None and (discount_code.used_count or 0) >= discount_code.max_uses:
            return _reject(USAGE_LIMIT_REACHED)

    return DiscountValidation(
        valid=True,
        discount_amount=calculate_discount_amount(discount_code, total),
        discount_code=discount_code,
    )


def redemption_key_for(discount_code: DiscountCode, user_id: int | None, session_id: str | None) -> Optional[str]:
    if discount_code.usage_type == "one_time":
        return "global"
    if discount_code.usage_type == "once_per_user":
        if user_id is not None:
            return f"user:{user_id}"
        return f"session:{session_id}"
    return None


def _redeemed_message(redemption_key: str | None) -> str:
    if redemption_key and redemption_key.startswith("user:"):
        return "You have already used this discount code"
    if redemption_key and redemption_key.startswith("session:"):
        return "This discount code has already been used"
    return ALREADY_USED


def record_discount_usage(
    db: Session,
    discount_code_id: int,
    user_id: int | None,
    session_id: str | None,
    order_id: int | None = None,
    *,
    commit: bool = True,
) -> DiscountCodeUsage:
    """Append a usage row and bump ``used_count`` in the same transaction.

    The unique (discount_code_id, redemption_key) constraint and the guarded
    counter UPDATE are the authoritative "already used" check; either failing
    raises DiscountAlreadyRedeemedError and nothing is written.
    """
    discount_code = get_discount_code(db, discount_code_id)
    redemption_key = redemption_key_for(discount_code, user_id, session_id)

    counter_filters = [DiscountCode.id == discount_code_id]
    if discount_code.usage_type == "one_time":
        counter_filters.append(DiscountCode.used_count == 0)
    elif discount_code.usage_type == "unlimited" and discount_code.max_uses is not None:
        counter_filters.append(DiscountCode.used_count < DiscountCode.max_uses)

    usage = DiscountCodeUsage(
        discount_code_id=discount_code_id,
        user_id=user_id,
        session_id=session_id,
        order_id=order_id,
        redemption_key=redemption_key,
    )
    try:
        db.add(usage)
        db.flush()
        updated = (
            db.query(DiscountCode)
            .filter(*counter_filters)
            .update({DiscountCode.used_count: DiscountCode.used_count + 1}, synchronize_session=False)
        )
        if updated == 0:
            message = ALREADY_USED if discount_code.usage_type == "one_time" else USAGE_LIMIT_REACHED
            raise DiscountAlreadyRedeemedError(message)
        if commit:
            db.commit()
            db.refresh(usage)
    except IntegrityError as exc:
        if commit:
            db.rollback()
        _count_redemption_conflict(discount_code_id, redemption_key)
        raise DiscountAlreadyRedeemedError(_redeemed_message(redemption_key)) from exc
    except DiscountAlreadyRedeemedError:
        # contador já esgotado (one_time ou max_uses)
        if commit:
            db.rollback()
        _count_redemption_conflict(discount_code_id, redemption_key)
        raise
    except Exception:
        if commit:
            db.rollback()
        raise

    logger.info(
        "discount usage recorded code_id=%s order_id=%s",
        discount_code_id,
        order_id,
        extra={"discount_code_id": discount_code_id, "order_id": order_id},
    )
    request_metrics.increment("discount_redemptions")
    return usage


def _count_redemption_conflict(discount_code_id: int, redemption_key: str | None) -> None:
    logger.warning(
        "duplicate discount redemption rejected code_id=%s key=%s",
        discount_code_id,
        redemption_key,
        extra={"discount_code_id": discount_code_id},
    )
    request_metrics.increment("discount_redemption_conflicts")


def get_discount_code_usage(db: Session, discount_code_id: int) -> list[DiscountCodeUsage]:
    get_discount_code(db, discount_code_id)
    return (
        db.query(DiscountCodeUsage)
        .filter(DiscountCodeUsage.discount_code_id == discount_code_id)
        .order_by(DiscountCodeUsage.created_at.desc(), DiscountCodeUsage.id.desc())
        .all()
    )


def is_expired(discount_code: DiscountCode, now: datetime | None = None) -> bool:
    end_date = _as_utc(discount_code.end_date)
    return end_date is not None and (now or _utcnow()) > end_date


def is_usage_exceeded(discount_code: DiscountCode) -> bool:
    used_count = discount_code.used_count or 0
    if discount_code.usage_type == "one_time":
        return used_count > 0
    if discount_code.usage_type == "unlimited" and discount_code.max_uses is not None:
        return used_count >= discount_code.max_uses
    return False


def _validate_discount_fields(fields: dict[str, Any]) -> None:
    if not fields.get("code"):
        raise ValueError("Discount code is required")
    if fields.get("discount_type") not in DISCOUNT_TYPES:
        raise ValueError("discount_type must be percentage or fixed_amount")
    if fields.get("usage_type") not in USAGE_TYPES:
        raise ValueError("usage_type must be one_time, once_per_user or unlimited")

    value = to_money(fields.get("discount_value"))
    if value <= 0:
        raise ValueError("Discount value must be greater than 0")
    if fields["discount_type"] == "percentage" and value > 100:
        raise ValueError("Percentage discount cannot exceed 100%")
    if to_money(fields.get("min_order_amount")) < 0:
        raise ValueError("Minimum order amount cannot be negative")

    max_uses = fields.get("max_uses")
    if max_uses is not None and max_uses < 1:
        raise ValueError("max_uses must be at least 1")

    start_date = _as_utc(fields.get("start_date"))
    end_date = _as_utc(fields.get("end_date"))
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValueError("End date must be after start date")


def _reject_null_required(data: dict[str, Any]) -> None:
    cleared = sorted(key for key in _REQUIRED_FIELDS if key in data and data[key] is None)
    if cleared:
        raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")


def _code_taken(db: Session, code: str, exclude_id: int | None = None) -> bool:
    query = db.query(DiscountCode.id).filter(func.upper(DiscountCode.code) == code)
    if exclude_id is not None:
        query = query.filter(DiscountCode.id != exclude_id)
    return query.first() is not None


def _ensure_code_available(db: Session, code: str, exclude_id: int | None = None) -> None:
    if _code_taken(db, code, exclude_id):
        raise DiscountCodeExistsError()


def create_discount_code(db: Session, data: dict[str, Any], created_by: int | None = None) -> DiscountCode:
    _reject_null_required(data)
    fields = {key: data.get(key) for key in _EDITABLE_FIELDS if key in data}
    fields["code"] = normalize_code(fields.get("code"))
    fields.setdefault("usage_type", "unlimited")
    fields.setdefault("active", True)
    if fields.get("min_order_amount") is None:
        fields["min_order_amount"] = ZERO
    if fields.get("start_date") is None:
        fields["start_date"] = _utcnow()
    _validate_discount_fields(fields)
    _ensure_code_available(db, fields["code"])

    discount_code = DiscountCode(**fields, used_count=0, created_by=created_by)
    try:
        db.add(discount_code)
        db.commit()
        db.refresh(discount_code)
    except IntegrityError as exc:
        db.rollback()
        # corrida com outro cadastro do mesmo código; demais violações sobem como estão
        if _code_taken(db, fields["code"]):
            raise DiscountCodeExistsError() from exc
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("discount code created id=%s code=%s", discount_code.id, discount_code.code)
    return discount_code


def update_discount_code(db: Session, discount_code_id: int, data: dict[str, Any]) -> DiscountCode:
    discount_code = get_discount_code(db, discount_code_id)
    _reject_null_required(data)
    merged = {key: getattr(discount_code, key) for key in _EDITABLE_FIELDS}
    merged.update({key: value for key, value in data.items() if key in _EDITABLE_FIELDS})
    merged["code"] = normalize_code(merged.get("code"))
    if merged.get("min_order_amount") is None:
        merged["min_order_amount"] = ZERO
    if merged.get("start_date") is None:
        merged["start_date"] = discount_code.start_date or _utcnow()
    _validate_discount_fields(merged)
    if merged["code"] != discount_code.code:
        _ensure_code_available(db, merged["code"], exclude_id=discount_code.id)

    for key, value in merged.items():
        setattr(discount_code, key, value)
    try:
        db.commit()
        db.refresh(discount_code)
    except IntegrityError as exc:
        db.rollback()
        if _code_taken(db, merged["code"], exclude_id=discount_code_id):
            raise DiscountCodeExistsError() from exc
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("discount code updated id=%s code=%s", discount_code.id, discount_code.code)
    return discount_code


def delete_discount_code(db: Session, discount_code_id: int) -> None:
    discount_code = get_discount_code(db, discount_code_id)
    try:
        # carrinhos perdem o desconto; pedidos mantêm o snapshot textual
        db.query(CartSession).filter(CartSession.applied_discount_code_id == discount_code_id).update(
            {CartSession.applied_discount_code_id: None, CartSession.discount_amount: 0},
            synchronize_session=False,
        )
        db.query(Order).filter(Order.discount_code_id == discount_code_id).update(
            {Order.discount_code_id: None},
            synchronize_session=False,
        )
        db.delete(discount_code)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("discount code deleted id=%s", discount_code_id)


def list_discount_codes(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    active: bool | None = None,
) -> tuple[list[DiscountCode], int]:
    query = db.query(DiscountCode)
    if active is not None:
        query = query.filter(DiscountCode.active.is_(active))
    total = query.count()
    items = (
        query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
