"""Payable amount after discounts. Subtotal and shipping are discounted separately."""
from collections.abc import Iterable

from voucher_engine.schemas.voucher import (
    ErrorKind,
    OrderContext,
    SelectionSummary,
    VoucherCategory,
    VoucherVerdict,
)


def leg_discounts(results: Iterable[VoucherVerdict]) -> tuple[int, int]:
    """(subtotal discount, shipping discount) from the valid verdicts."""
    subtotal_leg = 0
    shipping_leg = 0
    for r in results:
        if not r.valid:
            continue
        if r.category == VoucherCategory.shipping:
            shipping_leg += r.discount_amount
        else:
            subtotal_leg += r.discount_amount
    return subtotal_leg, shipping_leg


def finalize(ctx: OrderContext, results: Iterable[VoucherVerdict]) -> int:
    subtotal_leg, shipping_leg = leg_discounts(results)
    # Each leg is clamped on its own, so a payable amount is never negative
    return max(ctx.subtotal - subtotal_leg, 0) + max(ctx.shipping_cost - shipping_leg, 0)


def single_final_amount(ctx: OrderContext, verdict: VoucherVerdict) -> int:
    return finalize(ctx, [verdict])


def summarize(
    ctx: OrderContext,
    results: list[VoucherVerdict],
    reason: ErrorKind | None = None,
) -> SelectionSummary:
    valid = [r for r in results if r.valid]
    if reason is None and valid and len(valid) < len(results):
        reason = ErrorKind.PartialValidationFailure
    return SelectionSummary(
        order_value=ctx.subtotal,
        shipping_cost=ctx.shipping_cost,
        total_discount=sum(r.discount_amount for r in valid),
        final_amount=finalize(ctx, valid),
        applied_count=len(valid),
        reason=reason,
    )
