"""Per-size stock ledger.

Every mutation is a single conditional UPDATE scoped by ``use_stock``; sizes with
stock tracking disabled are unlimited and every operation on them succeeds
without touching the row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.models.catalog import Size
from app.services.errors import InsufficientStockError, SizeNotFoundError

logger = logging.getLogger(__name__)

UNLIMITED_STOCK = -1


@dataclass(frozen=True)
class StockLevel:
    size_id: int
    use_stock: bool
    stock_quantity: int
    reserved_quantity: int

    @property
    def available(self) -> int:
        if not self.use_stock:
            return UNLIMITED_STOCK
        return max(0, self.stock_quantity - self.reserved_quantity)

    def as_dict(self) -> dict:
        return {
            "size_id": self.size_id,
            "use_stock": self.use_stock,
            "stock_quantity": self.stock_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available": self.available,
        }


def _clamped_subtract(column, quantity: int):
    return case((column - quantity < 0, 0), else_=column - quantity)


def _load_level(db: Session, size_id: int) -> StockLevel:
    row = (
        db.query(Size.id, Size.use_stock, Size.stock_quantity, Size.reserved_quantity)
        .filter(Size.id == size_id)
        .first()
    )
    if row is None:
        raise SizeNotFoundError(size_id)
    return StockLevel(
        size_id=row.id,
        use_stock=bool(row.use_stock),
        stock_quantity=int(row.stock_quantity or 0),
        reserved_quantity=int(row.reserved_quantity or 0),
    )


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValueError("quantity must be positive")


def _apply(db: Session, size_id: int, values: dict, *extra_filters, commit: bool) -> int:
    try:
        updated = (
            db.query(Size)
            .filter(Size.id == size_id, Size.use_stock.is_(True), *extra_filters)
            .update(values, synchronize_session=False)
        )
        if commit:
            db.commit()
    except Exception:
        if commit:
            db.rollback()
        raise
    return updated


def get_stock_level(db: Session, size_id: int) -> StockLevel:
    return _load_level(db, size_id)


def get_stock_summary(db: Session, product_id: int) -> list[StockLevel]:
    rows = (
        db.query(Size.id, Size.use_stock, Size.stock_quantity, Size.reserved_quantity)
        .filter(Size.product_id == product_id)
        .order_by(Size.id)
        .all()
    )
    return [
        StockLevel(
            size_id=row.id,
            use_stock=bool(row.use_stock),
            stock_quantity=int(row.stock_quantity or 0),
            reserved_quantity=int(row.reserved_quantity or 0),
        )
        for row in rows
    ]


def check_stock_availability(db: Session, size_id: int, quantity: int) -> tuple[bool, int]:
    level = _load_level(db, size_id)
    if not level.use_stock:
        return True, UNLIMITED_STOCK
    return level.available >= quantity, level.available


def reserve_stock(db: Session, size_id: int, quantity: int, *, commit: bool = True) -> None:
    _require_positive(quantity)
    level = _load_level(db, size_id)
    if not level.use_stock:
        return

    updated = _apply(
        db,
        size_id,
        {Size.reserved_quantity: Size.reserved_quantity + quantity},
        Size.stock_quantity - Size.reserved_quantity >= quantity,
        commit=commit,
    )
    if updated == 0:
        current = _load_level(db, size_id)
        logger.warning(
            "stock reservation rejected size_id=%s requested=%s available=%s",
            size_id,
            quantity,
            current.available,
            extra={"size_id": size_id},
        )
        raise InsufficientStockError(size_id=size_id, available=current.available, requested=quantity)


def release_stock(db: Session, size_id: int, quantity: int, *, commit: bool = True) -> None:
    _require_positive(quantity)
    _apply(
        db,
        size_id,
        {Size.reserved_quantity: _clamped_subtract(Size.reserved_quantity, quantity)},
        commit=commit,
    )


def decrement_stock(db: Session, size_id: int, quantity: int, *, commit: bool = True) -> None:
    _require_positive(quantity)
    _apply(
        db,
        size_id,
        {
            Size.stock_quantity: _clamped_subtract(Size.stock_quantity, quantity),
            Size.reserved_quantity: _clamped_subtract(Size.reserved_quantity, quantity),
        },
        commit=commit,
    )


def increment_stock(db: Session, size_id: int, quantity: int, *, commit: bool = True) -> StockLevel:
    _require_positive(quantity)
    level = _load_level(db, size_id)
    if not level.use_stock:
        raise ValueError("stock tracking is disabled for this size")
    _apply(db, size_id, {Size.stock_quantity: Size.stock_quantity + quantity}, commit=commit)
    logger.info("stock incremented size_id=%s quantity=%s", size_id, quantity, extra={"size_id": size_id})
    return _load_level(db, size_id)


def update_stock_quantity(
    db: Session,
    size_id: int,
    quantity: int,
    *,
    use_stock: bool | None = None,
    commit: bool = True,
) -> StockLevel:
    """Admin absolute set; also the only way to toggle stock tracking on a size."""
    if quantity < 0:
        raise ValueError("stock quantity cannot be negative")
    _load_level(db, size_id)

    values = {Size.stock_quantity: quantity}
    if use_stock is not None:
        values[Size.use_stock] = use_stock
    try:
        db.query(Size).filter(Size.id == size_id).update(values, synchronize_session=False)
        if commit:
            db.commit()
    except Exception:
        if commit:
            db.rollback()
        raise
    logger.info(
        "stock quantity set size_id=%s quantity=%s use_stock=%s",
        size_id,
        quantity,
        use_stock,
        extra={"size_id": size_id},
    )
    return _load_level(db, size_id)
