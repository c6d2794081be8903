"""Voucher storage access.

Reads always refresh rows already in the session identity map, so the ledger re-validates
against what is persisted now and not what a previous query loaded. claim_usage_slot is the
only code path that writes Voucher.usage_count.
"""
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, func, select

from voucher_engine.models import Voucher, VoucherRedemption


def get_voucher(db: Session, voucher_id: str) -> Voucher | None:
    stmt = select(Voucher).where(Voucher.voucher_id == voucher_id).execution_options(populate_existing=True)
    return db.exec(stmt).first()


def load_vouchers(db: Session, voucher_ids: Iterable[str]) -> dict[str, Voucher]:
    ids = list(dict.fromkeys(voucher_ids))
    if not ids:
        return {}
    stmt = select(Voucher).where(Voucher.voucher_id.in_(ids)).execution_options(populate_existing=True)
    return {v.voucher_id: v for v in db.exec(stmt).all()}


def count_user_redemptions(db: Session, voucher_ids: Iterable[str], user_id: str) -> dict[str, int]:
    ids = list(dict.fromkeys(voucher_ids))
    if not ids:
        return {}
    stmt = (
        select(VoucherRedemption.voucher_id, func.count())
        .where(VoucherRedemption.voucher_id.in_(ids), VoucherRedemption.user_id == user_id)
        .group_by(VoucherRedemption.voucher_id)
    )
    return {vid: int(n) for vid, n in db.exec(stmt).all()}


def user_redemption_count(db: Session, voucher_id: str, user_id: str) -> int:
    stmt = select(func.count()).select_from(VoucherRedemption).where(
        VoucherRedemption.voucher_id == voucher_id,
        VoucherRedemption.user_id == user_id,
    )
    return int(db.exec(stmt).one() or 0)


def find_order_redemptions(db: Session, voucher_ids: Iterable[str], order_id: str) -> dict[str, VoucherRedemption]:
    ids = list(dict.fromkeys(voucher_ids))
    if not ids:
        return {}
    stmt = select(VoucherRedemption).where(
        VoucherRedemption.voucher_id.in_(ids),
        VoucherRedemption.order_id == order_id,
    )
    return {r.voucher_id: r for r in db.exec(stmt).all()}


def claim_usage_slot(db: Session, voucher_id: str) -> bool:
    """
    Atomically take one use of a voucher inside the caller's transaction.
    False when no slot was left (the guarded UPDATE matched no row).
    """
    stmt = (
        update(Voucher)
        .where(Voucher.voucher_id == voucher_id, Voucher.usage_count < Voucher.usage_limit)
        .values(usage_count=Voucher.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.exec(stmt)
    return result.rowcount == 1


def append_redemption(
    db: Session,
    *,
    voucher_id: str,
    user_id: str,
    order_id: str,
    discount_amount: int,
    redeemed_at: datetime,
) -> VoucherRedemption:
    rec = VoucherRedemption(
        voucher_id=voucher_id,
        user_id=user_id,
        order_id=order_id,
        discount_amount=discount_amount,
        redeemed_at=redeemed_at,
    )
    db.add(rec)
    return rec
