"""Vouchers: discount or shipping terms, validity window, usage quotas and the redemption trail."""
from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from voucher_engine.core.clock import utcnow
from voucher_engine.schemas.voucher import (
    DiscountKind,
    DiscountTerms,
    ShippingTerms,
    VoucherCategory,
    VoucherTerms,
)


class Voucher(SQLModel, table=True):
    """Created by admins; usage_count is only ever written by the redemption ledger."""

    voucher_id: str = Field(primary_key=True, max_length=64)  # e.g. SUMMER2024
    category: VoucherCategory = Field(index=True)
    # discount vouchers only
    discount_kind: DiscountKind | None = Field(default=None)
    discount_value: int | None = Field(default=None)  # fixed: currency units, percentage: 1-100
    discount_cap: int | None = Field(default=None)  # max absolute discount of a percentage voucher
    # shipping vouchers only
    shipping_discount_value: int | None = Field(default=None)
    min_order_value: int = Field(default=0)
    usage_limit: int
    usage_count: int = Field(default=0)
    max_per_user: int = Field(default=1)
    valid_from: datetime = Field(index=True)
    valid_until: datetime = Field(index=True)
    active: bool = Field(default=True, index=True)
    is_deleted: bool = Field(default=False, index=True)
    description: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    def terms(self) -> VoucherTerms:
        if self.category == VoucherCategory.shipping:
            return ShippingTerms(value=self.shipping_discount_value or 0)
        return DiscountTerms(
            kind=self.discount_kind or DiscountKind.fixed,
            value=self.discount_value or 0,
            cap=self.discount_cap,
        )

    @property
    def remaining_usage(self) -> int:
        return max(0, self.usage_limit - (self.usage_count or 0))


class VoucherRedemption(SQLModel, table=True):
    """One consumed voucher on one order; append-only."""

    __table_args__ = (UniqueConstraint("voucher_id", "order_id", name="uq_redemption_voucher_order"),)

    id: int | None = Field(default=None, primary_key=True)
    voucher_id: str = Field(foreign_key="voucher.voucher_id", index=True, max_length=64)
    user_id: str = Field(index=True, max_length=64)
    order_id: str = Field(index=True, max_length=64)
    redeemed_at: datetime = Field(default_factory=utcnow, index=True)
    discount_amount: int
