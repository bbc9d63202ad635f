from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.database import Base

DISCOUNT_TYPES = ("percentage", "fixed_amount")
USAGE_TYPES = ("one_time", "once_per_user", "unlimited")


class DiscountCode(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_discount_codes_used_count_non_negative"),
        CheckConstraint("discount_value > 0", name="ck_discount_codes_value_positive"),
    )

    id = Column(Integer, primary_key=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_amount = Column(Numeric(10, 2), nullable=False, default=0)
    usage_type = Column(String(20), nullable=False, default="unlimited")
    max_uses = Column(Integer, nullable=True)
    # só incrementa, junto com um DiscountCodeUsage
    used_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("admin_users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    usages = relationship("DiscountCodeUsage", back_populates="discount_code", cascade="all, delete-orphan")


class DiscountCodeUsage(Base):
    __tablename__ = "discount_code_usage"
    __table_args__ = (
        UniqueConstraint("discount_code_id", "redemption_key", name="uq_discount_code_usage_redemption"),
    )

    id = Column(Integer, primary_key=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    # NULL para códigos unlimited; "global", "user:<id>" ou "session:<sid>" nos demais
    redemption_key = Column(String(160), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    discount_code = relationship("DiscountCode", back_populates="usages")
