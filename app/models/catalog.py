import sqlalchemy as sa
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")
    sizes = relationship("Size", back_populates="product", cascade="all, delete-orphan")


class Color(Base):
    __tablename__ = "colors"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    # cores sob encomenda custam 10% a mais
    custom = Column(Boolean, nullable=False, default=False)


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    color_id = Column(Integer, ForeignKey("colors.id"), nullable=True)
    name = Column(String(200), nullable=False)

    product = relationship("Product", back_populates="variants")
    color = relationship("Color")


class Size(Base):
    __tablename__ = "sizes"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_sizes_stock_quantity_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_sizes_reserved_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    dimensions = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    # Estoque: use_stock=False significa ilimitado
    use_stock = Column(Boolean, nullable=False, default=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    product = relationship("Product", back_populates="sizes")


class AdditionalService(Base):
    __tablename__ = "additional_services"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
