"""add b2b credit tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "stores"):
        op.create_table(
            "stores",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop_domain", sa.String(length=255), nullable=False),
            sa.Column("shop_name", sa.String(length=255), nullable=True),
            sa.Column("access_token", sa.String(length=255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "company_accounts"):
        op.create_table(
            "company_accounts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop_id", sa.String(length=36), nullable=False),
            sa.Column("shopify_company_id", sa.String(length=120), nullable=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("credit_limit", sa.Numeric(14, 2), nullable=False, server_default="0"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["shop_id"], ["stores.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "shop_id",
                "shopify_company_id",
                name="uq_company_accounts_shop_shopify_company",
            ),
        )

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop_id", sa.String(length=36), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=120), nullable=True),
            sa.Column("last_name", sa.String(length=120), nullable=True),
            sa.Column("shopify_customer_id", sa.String(length=120), nullable=True),
            sa.Column("company_id", sa.String(length=36), nullable=True),
            sa.Column("company_role", sa.String(length=40), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
            sa.Column("user_credit_limit", sa.Numeric(14, 2), nullable=True),
            sa.Column("user_credit_used", sa.Numeric(14, 2), nullable=False, server_default="0"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["shop_id"], ["stores.id"]),
            sa.ForeignKeyConstraint(["company_id"], ["company_accounts.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("shop_id", "email", name="uq_users_shop_email"),
        )

    if not _table_exists(inspector, "b2b_orders"):
        op.create_table(
            "b2b_orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_number", sa.String(length=40), nullable=False),
            sa.Column("shop_id", sa.String(length=36), nullable=False),
            sa.Column("company_id", sa.String(length=36), nullable=False),
            sa.Column("created_by_user_id", sa.String(length=36), nullable=False),
            sa.Column("shopify_order_id", sa.String(length=120), nullable=True),
            sa.Column("order_total", sa.Numeric(14, 2), nullable=False),
            sa.Column("credit_used", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("user_credit_used", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("paid_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("remaining_balance", sa.Numeric(14, 2), nullable=False),
            sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("order_status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("requires_review", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["shop_id"], ["stores.id"]),
            sa.ForeignKeyConstraint(["company_id"], ["company_accounts.id"]),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_number", name="uq_b2b_orders_order_number"),
            sa.UniqueConstraint("shop_id", "shopify_order_id", name="uq_b2b_orders_shop_shopify_order"),
        )

    if not _table_exists(inspector, "order_payments"):
        op.create_table(
            "order_payments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("method", sa.String(length=40), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="received"),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["order_id"], ["b2b_orders.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "credit_transactions"):
        op.create_table(
            "credit_transactions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("company_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("order_id", sa.String(length=36), nullable=True),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("transaction_type", sa.String(length=40), nullable=False),
            sa.Column("credit_amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("previous_balance", sa.Numeric(14, 2), nullable=False),
            sa.Column("new_balance", sa.Numeric(14, 2), nullable=False),
            sa.Column("idempotency_key", sa.String(length=200), nullable=True),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["company_id"], ["company_accounts.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("company_id", "sequence", name="uq_credit_transactions_company_sequence"),
            sa.UniqueConstraint(
                "company_id",
                "idempotency_key",
                name="uq_credit_transactions_company_idempotency",
            ),
        )

    if not _table_exists(inspector, "webhook_deliveries"):
        op.create_table(
            "webhook_deliveries",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("shop_domain", sa.String(length=255), nullable=False),
            sa.Column("topic", sa.String(length=60), nullable=False),
            sa.Column("webhook_id", sa.String(length=120), nullable=False),
            sa.Column("outcome", sa.String(length=40), nullable=False),
            sa.Column("payload_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    indexes = [
        ("stores", "ix_stores_shop_domain", ["shop_domain"], True),
        ("company_accounts", "ix_company_accounts_shop_id", ["shop_id"], False),
        ("users", "ix_users_shop_id", ["shop_id"], False),
        ("users", "ix_users_company_id", ["company_id"], False),
        ("users", "ix_users_shop_customer", ["shop_id", "shopify_customer_id"], False),
        ("b2b_orders", "ix_b2b_orders_shop_id", ["shop_id"], False),
        ("b2b_orders", "ix_b2b_orders_company_id", ["company_id"], False),
        ("b2b_orders", "ix_b2b_orders_created_by_user_id", ["created_by_user_id"], False),
        ("b2b_orders", "ix_b2b_orders_company_payment_status", ["company_id", "payment_status"], False),
        ("b2b_orders", "ix_b2b_orders_company_created_at", ["company_id", "created_at"], False),
        ("order_payments", "ix_order_payments_order_id", ["order_id"], False),
        ("credit_transactions", "ix_credit_transactions_company_id", ["company_id"], False),
        ("credit_transactions", "ix_credit_transactions_user_id", ["user_id"], False),
        ("credit_transactions", "ix_credit_transactions_order_id", ["order_id"], False),
        ("credit_transactions", "ix_credit_transactions_transaction_type", ["transaction_type"], False),
        ("credit_transactions", "ix_credit_transactions_company_order", ["company_id", "order_id"], False),
        ("webhook_deliveries", "ix_webhook_deliveries_webhook_id", ["webhook_id"], True),
        (
            "webhook_deliveries",
            "ix_webhook_deliveries_shop_topic_created_at",
            ["shop_domain", "topic", "created_at"],
            False,
        ),
    ]
    for table_name, index_name, columns, unique in indexes:
        if _table_exists(inspector, table_name) and not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=unique)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name in (
        "webhook_deliveries",
        "credit_transactions",
        "order_payments",
        "b2b_orders",
        "users",
        "company_accounts",
        "stores",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
