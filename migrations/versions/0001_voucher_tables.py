"""voucher tables

Creates voucher and voucherredemption. The (voucher_id, order_id) unique constraint is what
makes a retried redemption of the same order replay instead of double counting.

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
import sqlmodel  # noqa: F401


revision: str = "0001_voucher_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "voucher",
        sa.Column("voucher_id", sa.String(length=64), nullable=False),
        sa.Column("category", sa.Enum("discount", "shipping", name="vouchercategory"), nullable=False),
        sa.Column("discount_kind", sa.Enum("fixed", "percentage", name="discountkind"), nullable=True),
        sa.Column("discount_value", sa.Integer(), nullable=True),
        sa.Column("discount_cap", sa.Integer(), nullable=True),
        sa.Column("shipping_discount_value", sa.Integer(), nullable=True),
        sa.Column("min_order_value", sa.Integer(), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("max_per_user", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_until", sa.DateTime(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("voucher_id"),
    )
    op.create_index("ix_voucher_category", "voucher", ["category"])
    op.create_index("ix_voucher_valid_from", "voucher", ["valid_from"])
    op.create_index("ix_voucher_valid_until", "voucher", ["valid_until"])
    op.create_index("ix_voucher_active", "voucher", ["active"])
    op.create_index("ix_voucher_is_deleted", "voucher", ["is_deleted"])

    op.create_table(
        "voucherredemption",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("voucher_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(), nullable=False),
        sa.Column("discount_amount", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["voucher_id"], ["voucher.voucher_id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("voucher_id", "order_id", name="uq_redemption_voucher_order"),
    )
    op.create_index("ix_voucherredemption_voucher_id", "voucherredemption", ["voucher_id"])
    op.create_index("ix_voucherredemption_user_id", "voucherredemption", ["user_id"])
    op.create_index("ix_voucherredemption_order_id", "voucherredemption", ["order_id"])
    op.create_index("ix_voucherredemption_redeemed_at", "voucherredemption", ["redeemed_at"])


def downgrade() -> None:
    op.drop_table("voucherredemption")
    op.drop_table("voucher")
