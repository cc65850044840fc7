"""Initial POS schema: businesses, catalog, transactions, shifts

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 5), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("payment_account_id", sa.String(length=128), nullable=True),
        sa.Column("payment_account_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_day_closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("daily_summary_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "cashiers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cashiers_business_id", "cashiers", ["business_id"])

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("taxable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("age_restriction", sa.Integer(), nullable=True),
        sa.Column("time_restriction_start", sa.Integer(), nullable=True),
        sa.Column("time_restriction_end", sa.Integer(), nullable=True),
        sa.Column("system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint(
            "time_restriction_start IS NULL OR (time_restriction_start BETWEEN 0 AND 23)",
            name="ck_departments_time_start",
        ),
        sa.CheckConstraint(
            "time_restriction_end IS NULL OR (time_restriction_end BETWEEN 0 AND 23)",
            name="ck_departments_time_end",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_departments_business_id", "departments", ["business_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("upc", sa.String(length=14), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("business_id", "upc", name="uq_products_business_upc"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_business_id", "products", ["business_id"])
    op.create_index("ix_products_department_id", "products", ["department_id"])
    op.create_index("ix_products_active", "products", ["active"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("cashier_id", sa.Integer(), sa.ForeignKey("cashiers.id"), nullable=True),
        sa.Column("cashier_name", sa.String(length=120), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("payment_method", sa.String(length=8), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processing_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=128), nullable=True),
        sa.Column("settlement_ref", sa.String(length=128), nullable=True),
        sa.Column("refund_ref", sa.String(length=128), nullable=True),
        sa.Column("failure_message", sa.String(length=255), nullable=True),
        sa.Column("original_transaction_id", sa.String(length=36), sa.ForeignKey("transactions.id"), nullable=True),
        sa.Column("refunded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("refunded_amount", sa.Integer(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_by", sa.Integer(), sa.ForeignKey("cashiers.id"), nullable=True),
        sa.Column("void_reason", sa.String(length=255), nullable=True),
        sa.Column("age_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transactions_business_id", "transactions", ["business_id"])
    op.create_index("ix_transactions_cashier_id", "transactions", ["cashier_id"])
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_payment_method", "transactions", ["payment_method"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_payment_intent_id", "transactions", ["payment_intent_id"])
    op.create_index("ix_transactions_settlement_ref", "transactions", ["settlement_ref"])
    op.create_index("ix_transactions_original_transaction_id", "transactions", ["original_transaction_id"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    op.create_index("ix_transactions_business_created", "transactions", ["business_id", "created_at"])
    op.create_index("ix_transactions_business_type_created", "transactions", ["business_id", "type", "created_at"])

    op.create_table(
        "transaction_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.String(length=36),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("tax_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transaction_items_transaction_id", "transaction_items", ["transaction_id"])

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("cashier_id", sa.Integer(), sa.ForeignKey("cashiers.id"), nullable=False),
        sa.Column("starting_cash", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("starting_cash_denominations", sa.JSON(), nullable=False),
        sa.Column("ending_cash", sa.Integer(), nullable=True),
        sa.Column("ending_cash_denominations", sa.JSON(), nullable=True),
        sa.Column("expected_cash", sa.Integer(), nullable=True),
        sa.Column("cash_difference", sa.Integer(), nullable=True),
        sa.Column("total_cash_sales", sa.Integer(), nullable=True),
        sa.Column("total_card_sales", sa.Integer(), nullable=True),
        sa.Column("total_refunds", sa.Integer(), nullable=True),
        sa.Column("pay_ins", sa.Integer(), nullable=True),
        sa.Column("pay_outs", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shifts_business_id", "shifts", ["business_id"])
    op.create_index("ix_shifts_cashier_id", "shifts", ["cashier_id"])
    op.create_index("ix_shifts_started_at", "shifts", ["started_at"])

    # At most one open shift per cashier
    op.create_index(
        "uq_shifts_open_per_cashier",
        "shifts",
        ["business_id", "cashier_id"],
        unique=True,
        sqlite_where=sa.text("ended_at IS NULL"),
        postgresql_where=sa.text("ended_at IS NULL"),
    )


def downgrade():
    op.drop_index("uq_shifts_open_per_cashier", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("transaction_items")
    op.drop_table("transactions")
    op.drop_table("products")
    op.drop_table("departments")
    op.drop_table("cashiers")
    op.drop_table("businesses")
