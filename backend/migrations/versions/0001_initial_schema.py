"""Initial schema: catalog, stock, cash sessions, sales, identity, notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _status(name: str, values: tuple, default: str | None = None, nullable: bool = False):
    kwargs = {"nullable": nullable}
    if default is not None:
        kwargs["server_default"] = sa.text(f"'{default}'")
    return sa.Column(
        name,
        sa.Enum(*values, name=f"{name}_enum", native_enum=False, length=16, create_constraint=True),
        **kwargs,
    )


ENTITY_STATUS = ("ACTIVE", "INACTIVE")


def upgrade():
    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        _status("status", ENTITY_STATUS, "ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_locations_status", "locations", ["status"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        _status("role", ("ADMIN", "SELLER"), "SELLER"),
        sa.Column("location_id", sa.String(36), nullable=True),
        _status("status", ENTITY_STATUS, "ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_location_id", "users", ["location_id"])

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_session_tokens_user_id", "session_tokens", ["user_id"])
    op.create_index("ix_session_tokens_token_hash", "session_tokens", ["token_hash"], unique=True)

    op.create_table(
        "clients",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _status("status", ENTITY_STATUS, "ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("loyalty_points >= 0", name="ck_clients_points_nonneg"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_clients_status", "clients", ["status"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("cost_cents", sa.Integer(), nullable=False),
        sa.Column("vat_bps", sa.Integer(), nullable=False, server_default=sa.text("2100")),
        sa.Column("default_margin_bps", sa.Integer(), nullable=False, server_default=sa.text("3000")),
        sa.Column("base_price_cents", sa.Integer(), nullable=False),
        sa.Column("price_approved", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("expires_on", sa.Date(), nullable=True),
        _status("status", ENTITY_STATUS, "ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("cost_cents >= 0", name="ck_products_cost_nonneg"),
        sa.CheckConstraint("base_price_cents >= 0", name="ck_products_price_nonneg"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_barcode", "products", ["barcode"])
    op.create_index("ix_products_status", "products", ["status"])
    op.create_index("ix_products_status_expires", "products", ["status", "expires_on"])

    op.create_table(
        "location_price_overrides",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("location_id", sa.String(36), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("margin_bps", sa.Integer(), nullable=True),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("price_cents >= 0", name="ck_price_override_nonneg"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "location_id", name="uq_price_override_product_location"),
    )
    op.create_index("ix_location_price_overrides_product_id", "location_price_overrides", ["product_id"])
    op.create_index("ix_location_price_overrides_location_id", "location_price_overrides", ["location_id"])

    op.create_table(
        "quantity_tier_prices",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("min_qty", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("min_qty > 0", name="ck_quantity_tier_min_qty_positive"),
        sa.CheckConstraint("price_cents >= 0", name="ck_quantity_tier_price_nonneg"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "min_qty", name="uq_quantity_tier_product_min_qty"),
    )
    op.create_index("ix_quantity_tier_prices_product_id", "quantity_tier_prices", ["product_id"])

    op.create_table(
        "location_stock",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("location_id", sa.String(36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_nonneg"),
        sa.CheckConstraint("min_quantity >= 0", name="ck_location_stock_min_nonneg"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "location_id", name="uq_location_stock_product_location"),
    )
    op.create_index("ix_location_stock_product_id", "location_stock", ["product_id"])
    op.create_index("ix_location_stock_location_id", "location_stock", ["location_id"])

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("seller_id", sa.String(36), nullable=False),
        sa.Column("location_id", sa.String(36), nullable=False),
        _status("status", ("OPEN", "CLOSED"), "OPEN"),
        sa.Column("opening_float_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("closing_amount_cents", sa.Integer(), nullable=True),
        sa.Column("expected_amount_cents", sa.Integer(), nullable=True),
        sa.Column("variance_cents", sa.Integer(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.CheckConstraint("opening_float_cents >= 0", name="ck_cash_sessions_float_nonneg"),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cash_sessions_seller_id", "cash_sessions", ["seller_id"])
    op.create_index("ix_cash_sessions_location_id", "cash_sessions", ["location_id"])
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"])
    op.create_index(
        "ix_cash_sessions_seller_location_opened", "cash_sessions", ["seller_id", "location_id", "opened_at"]
    )
    op.create_index(
        "uq_cash_sessions_one_open_per_seller_location",
        "cash_sessions",
        ["seller_id", "location_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("seller_id", sa.String(36), nullable=False),
        sa.Column("seller_location_id", sa.String(36), nullable=False),
        sa.Column("sale_location_id", sa.String(36), nullable=False),
        sa.Column("is_remote", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("cash_session_id", sa.String(36), nullable=False),
        sa.Column("client_id", sa.String(36), nullable=True),
        sa.Column("buyer_name", sa.String(255), nullable=True),
        _status("payment_method", ("CASH", "MIXED", "DEBIT", "CREDIT", "CREDIT_CARD", "QR", "TRANSFER")),
        sa.Column("cash_tendered_cents", sa.Integer(), nullable=True),
        sa.Column("other_tendered_cents", sa.Integer(), nullable=True),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("cash_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _status("status", ("COMPLETED", "CANCELLED"), "COMPLETED"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.String(36), nullable=True),
        sa.CheckConstraint("total_cents >= 0", name="ck_sales_total_nonneg"),
        sa.CheckConstraint("change_cents >= 0", name="ck_sales_change_nonneg"),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["seller_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["sale_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_seller_id", "sales", ["seller_id"])
    op.create_index("ix_sales_seller_location_id", "sales", ["seller_location_id"])
    op.create_index("ix_sales_sale_location_id", "sales", ["sale_location_id"])
    op.create_index("ix_sales_cash_session_id", "sales", ["cash_session_id"])
    op.create_index("ix_sales_client_id", "sales", ["client_id"])
    op.create_index("ix_sales_status", "sales", ["status"])
    op.create_index("ix_sales_seller_status_created", "sales", ["seller_id", "status", "created_at"])
    op.create_index("ix_sales_session_status", "sales", ["cash_session_id", "status"])

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("sale_id", sa.String(36), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("price_source", sa.String(16), nullable=False, server_default=sa.text("'BASE'")),
        sa.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line_number"),
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"])
    op.create_index("ix_sale_lines_product_id", "sale_lines", ["product_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), nullable=False),
        _status("kind", ("REMOTE_SALE", "EXPIRY", "LOW_ROTATION", "PRICE_CHANGE")),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("location_id", sa.String(36), nullable=True),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("sale_id", sa.String(36), nullable=True),
        _status("status", ("PENDING", "READ", "ARCHIVED"), "PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index(
        "ix_notifications_kind_product_location", "notifications", ["kind", "product_id", "location_id", "created_at"]
    )
    op.create_index("ix_notifications_location_status", "notifications", ["location_id", "status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("entity", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=True),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_index("uq_cash_sessions_one_open_per_seller_location", table_name="cash_sessions")
    op.drop_table("cash_sessions")
    op.drop_table("location_stock")
    op.drop_table("quantity_tier_prices")
    op.drop_table("location_price_overrides")
    op.drop_table("products")
    op.drop_table("clients")
    op.drop_table("session_tokens")
    op.drop_table("users")
    op.drop_table("locations")
