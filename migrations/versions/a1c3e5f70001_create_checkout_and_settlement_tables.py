"""create checkout and settlement tables

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-18 10:12:44.318204

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
MONEY = sa.Numeric(14, 2)


def _timestamp(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(120), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("wallet_balance", MONEY, nullable=False, server_default="0"),
        _timestamp(),
        _timestamp("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("base_price", MONEY, nullable=True),
        sa.Column("current_price", MONEY, nullable=True),
        sa.Column("price", MONEY, nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="NGN"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "group_buying_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        _timestamp(),
        _timestamp("updated_at"),
    )
    op.create_index("ix_courses_tutor_id", "courses", ["tutor_id"])

    op.create_table(
        "learner_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True
        ),
        sa.Column("interests", JSON, nullable=False),
        sa.Column("goals", JSON, nullable=False),
        _timestamp(),
    )

    op.create_table(
        "cart_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        _timestamp("added_at"),
        sa.UniqueConstraint("user_id", "course_id", name="uq_cart_user_course"),
    )
    op.create_index("ix_cart_items_user_id", "cart_items", ["user_id"])

    op.create_table(
        "course_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("enrollment_type", sa.String(50), nullable=False, server_default="paid"),
        sa.Column("price_paid", MONEY, nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        _timestamp("enrolled_at"),
        sa.UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )
    op.create_index("ix_course_enrollments_user_id", "course_enrollments", ["user_id"])
    op.create_index("ix_course_enrollments_course_id", "course_enrollments", ["course_id"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("promo_type", sa.String(20), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", MONEY, nullable=False),
        sa.Column("is_global", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=True),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("per_user_limit", sa.Integer(), nullable=True),
        _timestamp(),
    )
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)

    op.create_table(
        "promo_code_allowed_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.UniqueConstraint("promo_code_id", "user_id", name="uq_promo_allowed_user"),
    )

    op.create_table(
        "group_purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("invite_code", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING_PAYMENT"),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("member_limit", sa.Integer(), nullable=False),
        sa.Column("group_price", MONEY, nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp(),
    )
    op.create_index(
        "ix_group_purchases_invite_code", "group_purchases", ["invite_code"], unique=True
    )
    op.create_index("ix_group_purchases_course_id", "group_purchases", ["course_id"])
    op.create_index("ix_group_purchases_creator_id", "group_purchases", ["creator_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(100), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=True),
        sa.Column("course_ids", JSON, nullable=True),
        sa.Column(
            "group_purchase_id",
            sa.Integer(),
            sa.ForeignKey("group_purchases.id"),
            nullable=True,
        ),
        sa.Column("amount", MONEY, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="NGN"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("payment_method", sa.String(30), nullable=False, server_default="PAYSTACK"),
        sa.Column("payment_id", sa.String(100), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subtotal_amount", MONEY, nullable=True),
        sa.Column("discount_amount", MONEY, nullable=True),
        sa.Column("vat_amount", MONEY, nullable=True),
        sa.Column("tutor_share_amount", MONEY, nullable=True),
        sa.Column("platform_share_amount", MONEY, nullable=True),
        sa.Column("total_amount", MONEY, nullable=True),
        sa.Column(
            "promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id"), nullable=True
        ),
        sa.Column("metadata", JSON, nullable=True),
        _timestamp(),
        _timestamp("updated_at"),
    )
    op.create_index("ix_transactions_reference", "transactions", ["reference"], unique=True)
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])

    op.create_table(
        "promo_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id"), nullable=False
        ),
        sa.Column(
            "transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("discount_amount", MONEY, nullable=False, server_default="0"),
        _timestamp("redeemed_at"),
        sa.UniqueConstraint(
            "promo_code_id", "transaction_id", name="uq_redemption_promo_transaction"
        ),
    )

    op.create_table(
        "transaction_line_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False
        ),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("discounted_price", MONEY, nullable=False),
        sa.Column("discount_amount", MONEY, nullable=False),
        sa.Column("vat_amount", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("tutor_share_amount", MONEY, nullable=False),
        sa.Column("platform_share_amount", MONEY, nullable=False),
        sa.Column("split_percent", sa.Numeric(5, 4), nullable=False),
        sa.Column(
            "promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id"), nullable=True
        ),
        sa.Column("promo_type", sa.String(20), nullable=True),
        sa.Column("promo_discount_type", sa.String(20), nullable=True),
        sa.Column("promo_discount_value", MONEY, nullable=True),
        sa.UniqueConstraint("transaction_id", "course_id", name="uq_line_item_tx_course"),
    )

    op.create_table(
        "settlement_markers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            nullable=False,
            unique=True,
        ),
        _timestamp("applied_at"),
    )

    op.create_table(
        "vat_ledger",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("rate", sa.Numeric(6, 4), nullable=False),
        _timestamp("recorded_at"),
    )

    op.create_table(
        "tutor_earnings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False
        ),
        sa.Column(
            "line_item_id",
            sa.Integer(),
            sa.ForeignKey("transaction_line_items.id"),
            nullable=False,
        ),
        sa.Column("tutor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("split_percent", sa.Numeric(5, 4), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        _timestamp(),
        sa.UniqueConstraint("transaction_id", "line_item_id", name="uq_earning_tx_line_item"),
    )
    op.create_index("ix_tutor_earnings_tutor_id", "tutor_earnings", ["tutor_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("action_label", sa.String(100), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_role", "notifications", ["role"])


def downgrade() -> None:
    for table in (
        "notifications",
        "tutor_earnings",
        "vat_ledger",
        "settlement_markers",
        "transaction_line_items",
        "promo_redemptions",
        "transactions",
        "group_purchases",
        "promo_code_allowed_users",
        "promo_codes",
        "course_enrollments",
        "cart_items",
        "learner_profiles",
        "courses",
        "users",
    ):
        op.drop_table(table)
