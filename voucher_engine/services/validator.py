"""Single voucher validation and discount calculation.

Pure functions: the caller loads the voucher and the user's redemption count, passes
the current time, and gets back a verdict. Nothing here touches the database.
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from voucher_engine.core.config import settings
from voucher_engine.models import Voucher
from voucher_engine.schemas.voucher import (
    DiscountKind,
    ErrorKind,
    OrderContext,
    ShippingTerms,
    VoucherCategory,
    VoucherTerms,
    VoucherVerdict,
)

VALID_MESSAGE = "Voucher is valid."

MESSAGES = {
    ErrorKind.VoucherUnavailable: "Voucher does not exist or is no longer available.",
    ErrorKind.NotYetActive: "Voucher is not active yet.",
    ErrorKind.Expired: "Voucher has expired.",
    ErrorKind.UsageLimitExceeded: "Voucher has no remaining uses.",
    ErrorKind.UserLimitExceeded: "You have already used this voucher the maximum number of times.",
    ErrorKind.CategoryConflict: "Only one voucher per category can be applied to an order.",
    ErrorKind.PartialValidationFailure: "Some vouchers could not be applied.",
    ErrorKind.RedemptionRolledBack: "Vouchers could not be redeemed; no voucher was used.",
    ErrorKind.CatalogUnavailable: "Voucher catalogue is temporarily unavailable.",
}


def round_money(amount: Decimal | int) -> int:
    """Round to the smallest currency unit, half up."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def message_for(reason: ErrorKind, voucher: Voucher | None = None) -> str:
    if reason == ErrorKind.MinOrderNotMet and voucher is not None:
        return f"Order must reach at least {voucher.min_order_value:,} {settings.currency}."
    if reason == ErrorKind.MinOrderNotMet:
        return "Order value is below the voucher minimum."
    return MESSAGES[reason]


def compute_discount(terms: VoucherTerms, ctx: OrderContext) -> int:
    if isinstance(terms, ShippingTerms):
        # Never produces a negative shipping fee
        return min(terms.value, ctx.shipping_cost)
    if terms.kind == DiscountKind.percentage:
        amount = round_money(Decimal(ctx.subtotal) * Decimal(terms.value) / Decimal(100))
        if terms.cap is not None:
            amount = min(amount, terms.cap)
        return min(amount, ctx.subtotal)
    return min(terms.value, ctx.subtotal)


def check_voucher(
    voucher: Voucher,
    ctx: OrderContext,
    *,
    user_redemptions: int,
    now: datetime,
) -> ErrorKind | None:
    """First failing rule, in a fixed order; None when the voucher applies."""
    if not voucher.active or voucher.is_deleted:
        return ErrorKind.VoucherUnavailable
    if now < voucher.valid_from:
        return ErrorKind.NotYetActive
    if now > voucher.valid_until:
        return ErrorKind.Expired
    if ctx.subtotal < voucher.min_order_value:
        return ErrorKind.MinOrderNotMet
    if (voucher.usage_count or 0) >= voucher.usage_limit:
        return ErrorKind.UsageLimitExceeded
    if user_redemptions >= voucher.max_per_user:
        return ErrorKind.UserLimitExceeded
    return None


def invalid_verdict(
    voucher_id: str,
    reason: ErrorKind,
    *,
    category: VoucherCategory | None = None,
    voucher: Voucher | None = None,
) -> VoucherVerdict:
    return VoucherVerdict(
        voucher_id=voucher_id,
        category=category,
        valid=False,
        discount_amount=0,
        reason=reason,
        message=message_for(reason, voucher),
    )


def validate_voucher(
    voucher: Voucher | None,
    ctx: OrderContext,
    *,
    user_redemptions: int,
    now: datetime,
    voucher_id: str | None = None,
    category: VoucherCategory | None = None,
) -> VoucherVerdict:
    """
    Verdict for one voucher against an order.
    A missing voucher, or one whose stored category differs from the requested one,
    is reported as unavailable.
    """
    vid = voucher.voucher_id if voucher is not None else (voucher_id or "")
    if voucher is None:
        return invalid_verdict(vid, ErrorKind.VoucherUnavailable, category=category)
    if category is not None and voucher.category != category:
        return invalid_verdict(vid, ErrorKind.VoucherUnavailable, category=category)

    reason = check_voucher(voucher, ctx, user_redemptions=user_redemptions, now=now)
    if reason is not None:
        return invalid_verdict(vid, reason, category=voucher.category, voucher=voucher)
    return VoucherVerdict(
        voucher_id=vid,
        category=voucher.category,
        valid=True,
        discount_amount=compute_discount(voucher.terms(), ctx),
        message=VALID_MESSAGE,
    )
