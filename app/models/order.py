from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)

    # Identificação do cliente (guest usa session_id + public_hash)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)
    public_hash = Column(String(32), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(40), nullable=False)

    status = Column(String(20), nullable=False, default="pending")
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)

    # Snapshot do desconto: sobrevive a edições/remoção do código
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id", ondelete="SET NULL"), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_description = Column(Text, nullable=True)

    payment_method = Column(String(30), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    requires_invoice = Column(Boolean, nullable=False, default=False)
    nip = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    shipping_address = relationship(
        "ShippingAddress", back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    billing_address = relationship(
        "BillingAddress", back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class _AddressColumns:
    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    company = Column(String(200), nullable=True)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state_province = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False)
    phone = Column(String(40), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ShippingAddress(_AddressColumns, Base):
    __tablename__ = "shipping_addresses"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)

    order = relationship("Order", back_populates="shipping_address")


class BillingAddress(_AddressColumns, Base):
    __tablename__ = "billing_addresses"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    same_as_shipping = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="billing_address")
