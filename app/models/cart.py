from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class CartSession(Base):
    __tablename__ = "cart_sessions"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    applied_discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("CartItem", back_populates="cart_session", cascade="all, delete-orphan")
    applied_discount_code = relationship("DiscountCode")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint(
            "cart_session_id",
            "product_id",
            "variant_id",
            "size_id",
            "services_hash",
            name="uq_cart_items_line_key",
        ),
    )

    id = Column(Integer, primary_key=True)
    cart_session_id = Column(Integer, ForeignKey("cart_sessions.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    size_id = Column(Integer, ForeignKey("sizes.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_per_item = Column(Numeric(10, 2), nullable=False)
    services_hash = Column(String(32), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    cart_session = relationship("CartSession", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")
    size = relationship("Size")
    services = relationship("CartItemService", back_populates="cart_item", cascade="all, delete-orphan")


class CartItemService(Base):
    __tablename__ = "cart_item_services"

    cart_item_id = Column(Integer, ForeignKey("cart_items.id", ondelete="CASCADE"), primary_key=True)
    additional_service_id = Column(Integer, ForeignKey("additional_services.id"), primary_key=True)

    cart_item = relationship("CartItem", back_populates="services")
    additional_service = relationship("AdditionalService")
