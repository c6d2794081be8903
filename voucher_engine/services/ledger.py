"""Redemption ledger: all-or-nothing commit of a voucher selection for one order.

An attempt moves Proposed -> Validating -> Committed | Rejected. Every candidate is
re-validated against freshly read state, then each voucher takes a usage slot through a
guarded UPDATE inside a single transaction. Any voucher failing at that point rolls the
whole transaction back, so a selection is redeemed completely or not at all.

Redemptions are keyed by (voucher_id, order_id): a retried call for an order that was
already committed replays the stored entries instead of consuming another use.
"""
import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from voucher_engine.models import Voucher, VoucherRedemption
from voucher_engine.schemas.voucher import (
    ErrorKind,
    OrderContext,
    RedemptionResult,
    RedemptionState,
    VoucherCategory,
    VoucherRef,
    VoucherVerdict,
)
from voucher_engine.services import repository
from voucher_engine.services.calculator import summarize
from voucher_engine.services.composer import compose, find_category_conflict
from voucher_engine.services.validator import VALID_MESSAGE, invalid_verdict, message_for

log = logging.getLogger(__name__)

COMMITTED_MESSAGE = "Vouchers applied successfully."

_TRANSITIONS = {
    RedemptionState.proposed: {RedemptionState.validating, RedemptionState.rejected},
    RedemptionState.validating: {RedemptionState.committed, RedemptionState.rejected},
    RedemptionState.committed: set(),
    RedemptionState.rejected: set(),
}


class InvalidTransition(RuntimeError):
    pass


class RedemptionAttempt:
    """One try at redeeming a selection. Terminal states are final; retry with a new attempt."""

    def __init__(self, selection: Sequence[VoucherRef], ctx: OrderContext):
        self.selection = list(selection)
        self.ctx = ctx
        self.state = RedemptionState.proposed

    def advance(self, state: RedemptionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {state.value}")
        log.debug("redemption order_id=%s %s -> %s", self.ctx.order_id, self.state.value, state.value)
        self.state = state

    def commit(self, results: list[VoucherVerdict], replayed: bool = False) -> RedemptionResult:
        self.advance(RedemptionState.committed)
        return RedemptionResult(
            success=True,
            state=self.state,
            order_id=self.ctx.order_id or "",
            results=results,
            summary=summarize(self.ctx, results),
            message=COMMITTED_MESSAGE,
            replayed=replayed,
        )

    def reject(self, results: list[VoucherVerdict], reason: ErrorKind, message: str) -> RedemptionResult:
        self.advance(RedemptionState.rejected)
        # Nothing was redeemed, so the summary applies no discount
        return RedemptionResult(
            success=False,
            state=self.state,
            order_id=self.ctx.order_id or "",
            results=results,
            summary=summarize(self.ctx, [], reason=reason),
            reason=reason,
            message=message,
        )


def _replayed_verdict(
    ref: VoucherRef,
    prior: VoucherRedemption,
    voucher: Voucher | None,
    ctx: OrderContext,
) -> VoucherVerdict:
    """Verdict of an entry already committed for this order; same shape as the original commit."""
    if prior.user_id != ctx.user_id or voucher is None or voucher.category != ref.category:
        return invalid_verdict(ref.voucher_id, ErrorKind.VoucherUnavailable, category=ref.category)
    return VoucherVerdict(
        voucher_id=ref.voucher_id,
        category=voucher.category,
        valid=True,
        discount_amount=prior.discount_amount,
        message=VALID_MESSAGE,
    )


def redeem(
    db: Session,
    selection: Sequence[VoucherRef],
    ctx: OrderContext,
    now: datetime,
) -> RedemptionResult:
    """
    Commit a selection for ctx.order_id. Validation failures come back as a rejected
    result; storage faults roll back and propagate.
    """
    if not ctx.order_id:
        raise ValueError("order_id is required to redeem vouchers")
    try:
        return _redeem_once(db, selection, ctx, now)
    except IntegrityError:
        # A concurrent retry of the same order committed first; replay its entries
        db.rollback()
        log.warning("Duplicate redemption race: order_id=%s, replaying", ctx.order_id)
        return _redeem_once(db, selection, ctx, now)


def redeem_single(
    db: Session,
    voucher_id: str,
    ctx: OrderContext,
    now: datetime,
    category: VoucherCategory | None = None,
) -> RedemptionResult:
    if category is None:
        voucher = repository.get_voucher(db, voucher_id)
        if voucher is None:
            attempt = RedemptionAttempt([], ctx)
            attempt.advance(RedemptionState.validating)
            verdict = invalid_verdict(voucher_id, ErrorKind.VoucherUnavailable)
            return attempt.reject(
                [verdict],
                ErrorKind.VoucherUnavailable,
                f"Voucher {voucher_id}: {verdict.message}",
            )
        category = voucher.category
    return redeem(db, [VoucherRef(voucher_id=voucher_id, category=category)], ctx, now)


def _redeem_once(
    db: Session,
    selection: Sequence[VoucherRef],
    ctx: OrderContext,
    now: datetime,
) -> RedemptionResult:
    attempt = RedemptionAttempt(selection, ctx)
    if find_category_conflict(attempt.selection) is not None:
        return attempt.reject([], ErrorKind.CategoryConflict, message_for(ErrorKind.CategoryConflict))
    attempt.advance(RedemptionState.validating)

    ids = [ref.voucher_id for ref in attempt.selection]
    prior = repository.find_order_redemptions(db, ids, ctx.order_id)
    fresh = [ref for ref in attempt.selection if ref.voucher_id not in prior]
    fresh_ids = [ref.voucher_id for ref in fresh]
    vouchers = repository.load_vouchers(db, ids)
    counts = repository.count_user_redemptions(db, fresh_ids, ctx.user_id)
    fresh_results = iter(compose(fresh, ctx, vouchers, counts, now).results)
    results = [
        _replayed_verdict(ref, prior[ref.voucher_id], vouchers.get(ref.voucher_id), ctx)
        if ref.voucher_id in prior
        else next(fresh_results)
        for ref in attempt.selection
    ]

    failed = [r for r in results if not r.valid]
    if failed:
        first = failed[0]
        log.info(
            "Redemption rejected: order_id=%s voucher_id=%s reason=%s",
            ctx.order_id,
            first.voucher_id,
            first.reason.value if first.reason else None,
        )
        return attempt.reject(results, first.reason, f"Voucher {first.voucher_id}: {first.message}")

    if not fresh:
        return attempt.commit(results, replayed=True)
    return _commit(db, attempt, results, vouchers, prior, now)


def _commit(
    db: Session,
    attempt: RedemptionAttempt,
    results: list[VoucherVerdict],
    vouchers: dict[str, Voucher],
    prior: dict[str, VoucherRedemption],
    now: datetime,
) -> RedemptionResult:
    ctx = attempt.ctx
    # Row locks are always taken in voucher_id order so two overlapping selections cannot deadlock
    pending = sorted((r for r in results if r.voucher_id not in prior), key=lambda r: r.voucher_id)
    try:
        for verdict in pending:
            voucher = vouchers[verdict.voucher_id]
            # Time has passed since validation; concurrent redeemers may have taken the last slots
            post_hoc = None
            if not repository.claim_usage_slot(db, verdict.voucher_id):
                post_hoc = ErrorKind.UsageLimitExceeded
            elif repository.user_redemption_count(db, verdict.voucher_id, ctx.user_id) >= voucher.max_per_user:
                post_hoc = ErrorKind.UserLimitExceeded
            if post_hoc is not None:
                db.rollback()
                log.warning(
                    "Redemption rolled back: order_id=%s voucher_id=%s reason=%s",
                    ctx.order_id,
                    verdict.voucher_id,
                    post_hoc.value,
                )
                failed = invalid_verdict(verdict.voucher_id, post_hoc, category=verdict.category, voucher=voucher)
                results = [failed if r is verdict else r for r in results]
                return attempt.reject(
                    results,
                    ErrorKind.RedemptionRolledBack,
                    f"{message_for(ErrorKind.RedemptionRolledBack)} Voucher {failed.voucher_id}: {failed.message}",
                )
            repository.append_redemption(
                db,
                voucher_id=verdict.voucher_id,
                user_id=ctx.user_id,
                order_id=ctx.order_id,
                discount_amount=verdict.discount_amount,
                redeemed_at=now,
            )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        if not isinstance(e, IntegrityError):
            log.exception("Redemption commit failed: order_id=%s", ctx.order_id)
        raise

    log.info(
        "Redeemed vouchers=%s order_id=%s user_id=%s",
        ",".join(r.voucher_id for r in results),
        ctx.order_id,
        ctx.user_id,
    )
    return attempt.commit(results)
