from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.catalog import AdditionalService, Product, ProductVariant, Size
from app.services.errors import CatalogReferenceError, NotFoundError
from utils.money import to_money

CUSTOM_COLOR_MARKUP = Decimal("1.1")


@dataclass
class ResolvedLine:
    product: Product
    variant: ProductVariant
    size: Size
    services: list[AdditionalService]


def resolve_line(
    db: Session,
    product_id: int,
    variant_id: int,
    size_id: int,
    service_ids: list[int] | None = None,
) -> ResolvedLine:
    product = db.query(Product).filter(Product.id == product_id, Product.active.is_(True)).first()
    if product is None:
        raise NotFoundError("Product not found")

    variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    if variant is None or variant.product_id != product_id:
        raise CatalogReferenceError("Invalid variant for this product")

    size = db.query(Size).filter(Size.id == size_id).first()
    if size is None or size.product_id != product_id:
        raise CatalogReferenceError("Invalid size for this product")

    services = []
    for service_id in sorted(set(service_ids or [])):
        service = (
            db.query(AdditionalService)
            .filter(AdditionalService.id == service_id, AdditionalService.active.is_(True))
            .first()
        )
        if service is None:
            raise CatalogReferenceError("Invalid additional service ID")
        services.append(service)

    return ResolvedLine(product=product, variant=variant, size=size, services=services)


def price_per_item(line: ResolvedLine) -> Decimal:
    price = to_money(line.size.base_price)
    color = line.variant.color
    if color is not None and color.custom:
        price = price * CUSTOM_COLOR_MARKUP
    price += sum((to_money(service.price) for service in line.services), Decimal("0"))
    return to_money(price)
