"""Combine per-voucher verdicts for a selection of at most one voucher per category."""
from collections.abc import Mapping, Sequence
from datetime import datetime

from sqlmodel import Session

from voucher_engine.models import Voucher
from voucher_engine.schemas.voucher import (
    ErrorKind,
    OrderContext,
    SelectionOutcome,
    VoucherCategory,
    VoucherRef,
)
from voucher_engine.services import repository
from voucher_engine.services.calculator import summarize
from voucher_engine.services.validator import validate_voucher


def find_category_conflict(selection: Sequence[VoucherRef]) -> VoucherCategory | None:
    """First category tagged more than once, if any."""
    seen: set[VoucherCategory] = set()
    for ref in selection:
        if ref.category in seen:
            return ref.category
        seen.add(ref.category)
    return None


def conflict_outcome(ctx: OrderContext) -> SelectionOutcome:
    return SelectionOutcome(results=[], summary=summarize(ctx, [], reason=ErrorKind.CategoryConflict))


def compose(
    selection: Sequence[VoucherRef],
    ctx: OrderContext,
    vouchers: Mapping[str, Voucher],
    user_redemptions: Mapping[str, int],
    now: datetime,
) -> SelectionOutcome:
    """
    Validate every candidate on its own against the original subtotal and shipping cost.
    Discounts never lower each other's thresholds. Invalid candidates stay in the results
    so the caller can show per-voucher feedback.
    """
    if find_category_conflict(selection) is not None:
        return conflict_outcome(ctx)
    results = [
        validate_voucher(
            vouchers.get(ref.voucher_id),
            ctx,
            user_redemptions=user_redemptions.get(ref.voucher_id, 0),
            now=now,
            voucher_id=ref.voucher_id,
            category=ref.category,
        )
        for ref in selection
    ]
    return SelectionOutcome(results=results, summary=summarize(ctx, results))


def preview_selection(
    db: Session,
    selection: Sequence[VoucherRef],
    ctx: OrderContext,
    now: datetime,
) -> SelectionOutcome:
    """Read-only preview; a category conflict is answered before any voucher is read."""
    if find_category_conflict(selection) is not None:
        return conflict_outcome(ctx)
    ids = [ref.voucher_id for ref in selection]
    vouchers = repository.load_vouchers(db, ids)
    counts = repository.count_user_redemptions(db, ids, ctx.user_id)
    return compose(selection, ctx, vouchers, counts, now)
