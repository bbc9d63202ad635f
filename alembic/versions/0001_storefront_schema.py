from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_storefront_schema"
down_revision = None
branch_labels = None
depends_on = None


def _json_type():
    return postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def _timestamps(*, with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def _address_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("company", sa.String(length=200), nullable=True),
        sa.Column("address_line1", sa.String(length=255), nullable=False),
        sa.Column("address_line2", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("state_province", sa.String(length=100), nullable=False),
        sa.Column("postal_code", sa.String(length=20), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _create_index(inspector, name: str, table: str, columns: list[str], unique: bool = False) -> None:
    if not _has_index(inspector, table, name):
        op.create_index(name, table, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "users" not in tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_users_id", "users", ["id"], unique=False)
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "admin_users" not in tables:
        op.create_table(
            "admin_users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("password_hash", sa.String(), nullable=False),
            sa.Column("role", sa.String(), nullable=False, server_default="admin"),
            sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_admin_users_id", "admin_users", ["id"], unique=False)
        op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)

    if "products" not in tables:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(with_updated=False),
        )

    if "colors" not in tables:
        op.create_table(
            "colors",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("custom", sa.Boolean(), nullable=False, server_default=sa.false()),
        )

    if "product_variants" not in tables:
        op.create_table(
            "product_variants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("color_id", sa.Integer(), sa.ForeignKey("colors.id"), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
        )

    if "sizes" not in tables:
        op.create_table(
            "sizes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("dimensions", _json_type(), nullable=True),
            sa.Column("use_stock", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("stock_quantity >= 0", name="ck_sizes_stock_quantity_non_negative"),
            sa.CheckConstraint("reserved_quantity >= 0", name="ck_sizes_reserved_quantity_non_negative"),
        )

    if "additional_services" not in tables:
        op.create_table(
            "additional_services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        )

    if "discount_codes" not in tables:
        op.create_table(
            "discount_codes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("discount_type", sa.String(length=20), nullable=False),
            sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
            sa.Column("min_order_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("usage_type", sa.String(length=20), nullable=False, server_default="unlimited"),
            sa.Column("max_uses", sa.Integer(), nullable=True),
            sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("start_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("admin_users.id"), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("used_count >= 0", name="ck_discount_codes_used_count_non_negative"),
            sa.CheckConstraint("discount_value > 0", name="ck_discount_codes_value_positive"),
        )
        op.create_index("ix_discount_codes_code", "discount_codes", ["code"], unique=True)

    if "cart_sessions" not in tables:
        op.create_table(
            "cart_sessions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("session_id", sa.String(length=128), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("applied_discount_code_id", sa.Integer(), sa.ForeignKey("discount_codes.id"), nullable=True),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            *_timestamps(),
        )
        op.create_index("ix_cart_sessions_session_id", "cart_sessions", ["session_id"], unique=True)

    if "cart_items" not in tables:
        op.create_table(
            "cart_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("cart_session_id", sa.Integer(), sa.ForeignKey("cart_sessions.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id"), nullable=False),
            sa.Column("size_id", sa.Integer(), sa.ForeignKey("sizes.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("price_per_item", sa.Numeric(10, 2), nullable=False),
            sa.Column("services_hash", sa.String(length=32), nullable=False, server_default=""),
            *_timestamps(),
            sa.UniqueConstraint(
                "cart_session_id",
                "product_id",
                "variant_id",
                "size_id",
                "services_hash",
                name="uq_cart_items_line_key",
            ),
        )

    if "cart_item_services" not in tables:
        op.create_table(
            "cart_item_services",
            sa.Column(
                "cart_item_id",
                sa.Integer(),
                sa.ForeignKey("cart_items.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                "additional_service_id",
                sa.Integer(),
                sa.ForeignKey("additional_services.id"),
                primary_key=True,
            ),
        )

    if "orders" not in tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("session_id", sa.String(length=128), nullable=True),
            sa.Column("public_hash", sa.String(length=32), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=40), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("shipping_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column(
                "discount_code_id",
                sa.Integer(),
                sa.ForeignKey("discount_codes.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("discount_description", sa.Text(), nullable=True),
            sa.Column("payment_method", sa.String(length=30), nullable=True),
            sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("requires_invoice", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("nip", sa.String(length=20), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_orders_public_hash", "orders", ["public_hash"], unique=True)

    if "shipping_addresses" not in tables:
        op.create_table("shipping_addresses", *_address_columns())

    if "billing_addresses" not in tables:
        op.create_table(
            "billing_addresses",
            *_address_columns(),
            sa.Column("same_as_shipping", sa.Boolean(), nullable=False, server_default=sa.false()),
        )

    if "order_items" not in tables:
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("product_name", sa.String(length=200), nullable=False),
            sa.Column("product_description", sa.Text(), nullable=True),
            sa.Column("variant_id", sa.Integer(), nullable=False),
            sa.Column("variant_name", sa.String(length=200), nullable=False),
            sa.Column("variant_color_name", sa.String(length=100), nullable=True),
            sa.Column("variant_color_custom", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("size_id", sa.Integer(), nullable=False),
            sa.Column("size_name", sa.String(length=100), nullable=False),
            sa.Column("size_dimensions", _json_type(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
            *_timestamps(with_updated=False),
        )

    if "order_item_services" not in tables:
        op.create_table(
            "order_item_services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "order_item_id",
                sa.Integer(),
                sa.ForeignKey("order_items.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("service_id", sa.Integer(), nullable=False),
            sa.Column("service_name", sa.String(length=200), nullable=False),
            sa.Column("service_description", sa.Text(), nullable=True),
            sa.Column("service_price", sa.Numeric(10, 2), nullable=False),
            *_timestamps(with_updated=False),
        )

    if "discount_code_usage" not in tables:
        op.create_table(
            "discount_code_usage",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("discount_code_id", sa.Integer(), sa.ForeignKey("discount_codes.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("session_id", sa.String(length=128), nullable=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
            sa.Column("redemption_key", sa.String(length=160), nullable=True),
            *_timestamps(with_updated=False),
            sa.UniqueConstraint("discount_code_id", "redemption_key", name="uq_discount_code_usage_redemption"),
        )

    inspector = inspect(bind)
    _create_index(inspector, "ix_product_variants_product_id", "product_variants", ["product_id"])
    _create_index(inspector, "ix_sizes_product_id", "sizes", ["product_id"])
    _create_index(inspector, "ix_cart_sessions_user_id", "cart_sessions", ["user_id"])
    _create_index(inspector, "ix_cart_sessions_applied_discount_code_id", "cart_sessions", ["applied_discount_code_id"])
    _create_index(inspector, "ix_cart_items_cart_session_id", "cart_items", ["cart_session_id"])
    _create_index(inspector, "ix_orders_user_id", "orders", ["user_id"])
    _create_index(inspector, "ix_orders_session_id", "orders", ["session_id"])
    _create_index(inspector, "ix_orders_email", "orders", ["email"])
    _create_index(inspector, "ix_order_items_order_id", "order_items", ["order_id"])
    _create_index(inspector, "ix_order_item_services_order_item_id", "order_item_services", ["order_item_id"])
    _create_index(inspector, "ix_discount_code_usage_discount_code_id", "discount_code_usage", ["discount_code_id"])
    _create_index(inspector, "ix_discount_code_usage_user_id", "discount_code_usage", ["user_id"])
    _create_index(inspector, "ix_discount_code_usage_session_id", "discount_code_usage", ["session_id"])
    _create_index(inspector, "ix_discount_code_usage_order_id", "discount_code_usage", ["order_id"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    for table_name in (
        "discount_code_usage",
        "order_item_services",
        "order_items",
        "billing_addresses",
        "shipping_addresses",
        "orders",
        "cart_item_services",
        "cart_items",
        "cart_sessions",
        "discount_codes",
        "additional_services",
        "sizes",
        "product_variants",
        "colors",
        "products",
        "admin_users",
        "users",
    ):
        if table_name in tables:
            op.drop_table(table_name)
