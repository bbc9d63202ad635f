from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.http_errors import domain_http_exception
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.models.catalog import Product
from app.schemas.stock import StockQuantityUpdate, StockRestock
from app.services import stock as stock_service
from app.services.errors import StorefrontError

router = APIRouter(prefix="/api/admin/stock", tags=["admin-stock"])

_stock_managers = require_role(["admin", "staff"])


@router.get("/products/{product_id}")
def get_product_stock(
    product_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_stock_managers),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    levels = stock_service.get_stock_summary(db, product_id)
    return {"product_id": product_id, "sizes": [level.as_dict() for level in levels]}


@router.get("/sizes/{size_id}")
def get_size_stock(
    size_id: int,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_stock_managers),
):
    try:
        level = stock_service.get_stock_level(db, size_id)
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return level.as_dict()


@router.put("/sizes/{size_id}")
def set_size_stock(
    size_id: int,
    payload: StockQuantityUpdate,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_stock_managers),
):
    try:
        level = stock_service.update_stock_quantity(
            db,
            size_id,
            payload.stock_quantity,
            use_stock=payload.use_stock,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return level.as_dict()


@router.post("/sizes/{size_id}/restock")
def restock_size(
    size_id: int,
    payload: StockRestock,
    db: Session = Depends(get_db),
    _user: AdminUser = Depends(_stock_managers),
):
    try:
        level = stock_service.increment_stock(db, size_id, payload.quantity)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorefrontError as exc:
        raise domain_http_exception(exc) from exc
    return level.as_dict()
