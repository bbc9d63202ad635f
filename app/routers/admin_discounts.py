from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.config import DISCOUNT_LIST_DEFAULT_LIMIT, DISCOUNT_LIST_MAX_LIMIT
from app.core.database import get_db
from app.core.http_errors import domain_http_exception
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.models.discount import DiscountCode, DiscountCodeUsage
from app.schemas.discounts import DiscountCodeCreate, DiscountCodeUpdate
from app.services import discounts as discount_service
from app.services.errors import StorefrontError
from utils.money import money_float

router = APIRouter(prefix="/api/admin/discount-codes", tags=["admin-discounts"])
logger = logging.getLogger(__name__)

_admin_only = require_role(["admin"])


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def _discount_code_to_dict(discount_code: DiscountCode) -> Dict[str, Any]:
    return {
        "id": discount_code.id,
        "code": discount_code.code,
        "description": discount_code.description,
        "discount_type": discount_code.discount_type,
        "discount_value": money_float(discount_code.discount_value),
        "min_order_amount": money_float(discount_code.min_order_amount),
        "usage_type": discount_code.usage_type,
        "max_uses": discount_code.max_uses,
        "used_count": discount_code.used_count or 0,
        "active": bool(discount_code.active),
        "start_date": _isoformat(discount_code.start_date),
        "end_date": _isoformat(discount_code.end_date),
        "created_by": discount_code.created_by,
        "created_at": _isoformat(discount_code.created_at),
        "updated_at": _isoformat(discount_code.updated_at),
        "is_expired": discount_service.is_expired(discount_code),
        "is_usage_exceeded": discount_service.is_usage_exceeded(discount_code),
    }


def _usage_to_dict(usage: DiscountCodeUsage) -> Dict[str, Any]:
    return {
        "id": usage.id,
        "discount_code_id": usage.discount_code_id,
        "user_id": usage.user_id,
        "session_id": usage.session_id,
        "order_id": usage.order_id,
        "created_at": _isoformat(usage.created_at),
    }


@router.get("")
def list_discount_codes(
    page: int = Query(1, ge=1),
    limit: int = Query(DISCOUNT_LIST_DEFAULT_LIMIT, ge=1),
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_admin_only),
):
    limit = min(limit, DISCOUNT_LIST_MAX_LIMIT)
    items, total = discount_service.list_discount_codes(db, page=page, limit=limit, active=active)
    return {
        "discount_codes": [_discount_code_to_dict(item) for item in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_discount_code(
    payload: DiscountCodeCreate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(_admin_only),
):
    try:
        discount_code = discount_service.create_discount_code(db, payload.model_dump(), created_by=user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return _discount_code_to_dict(discount_code)


@router.get("/{discount_code_id}")
def get_discount_code(
    discount_code_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_admin_only),
):
    try:
        discount_code = discount_service.get_discount_code(db, discount_code_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return _discount_code_to_dict(discount_code)


@router.put("/{discount_code_id}")
def update_discount_code(
    discount_code_id: int,
    payload: DiscountCodeUpdate,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_admin_only),
):
    try:
        discount_code = discount_service.update_discount_code(
            db,
            discount_code_id,
            payload.model_dump(exclude_unset=True),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return _discount_code_to_dict(discount_code)


@router.delete("/{discount_code_id}")
def delete_discount_code(
    discount_code_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_admin_only),
):
    try:
        discount_service.delete_discount_code(db, discount_code_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return {"message": "Discount code deleted successfully"}


@router.get("/{discount_code_id}/usage")
def get_discount_code_usage(
    discount_code_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_admin_only),
):
    try:
        usages = discount_service.get_discount_code_usage(db, discount_code_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return {"discount_code_id": discount_code_id, "usage": [_usage_to_dict(usage) for usage in usages]}
