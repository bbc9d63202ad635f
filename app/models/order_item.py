import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)

    # Snapshot do catálogo no momento da compra
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(200), nullable=False)
    product_description = Column(Text, nullable=True)
    variant_id = Column(Integer, nullable=False)
    variant_name = Column(String(200), nullable=False)
    variant_color_name = Column(String(100), nullable=True)
    variant_color_custom = Column(Boolean, nullable=False, default=False)
    size_id = Column(Integer, nullable=False)
    size_name = Column(String(100), nullable=False)
    size_dimensions = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")
    services = relationship(
        "OrderItemService", back_populates="order_item", cascade="all, delete-orphan", order_by="OrderItemService.id"
    )


class OrderItemService(Base):
    __tablename__ = "order_item_services"

    id = Column(Integer, primary_key=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), index=True, nullable=False)
    service_id = Column(Integer, nullable=False)
    service_name = Column(String(200), nullable=False)
    service_description = Column(Text, nullable=True)
    service_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order_item = relationship("OrderItem", back_populates="services")
