"""Read side: vouchers a shopper can pick from, and a user's redemption history."""
import logging
import math
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from voucher_engine.models import Voucher, VoucherRedemption
from voucher_engine.schemas.voucher import DiscountKind, VoucherCategory

log = logging.getLogger(__name__)

SORTS = ("created_at", "discount_value", "shipping_discount_value")


class CatalogUnavailable(Exception):
    """The voucher store could not be read. Never reported as an empty catalogue."""


def serialize_voucher(v: Voucher, admin: bool = False) -> dict:
    """JSON view of a voucher; only the fields of its own category are present."""
    out = {
        "voucher_id": v.voucher_id,
        "category": v.category.value,
        "min_order_value": v.min_order_value,
        "max_per_user": v.max_per_user,
        "valid_from": v.valid_from.isoformat(),
        "valid_until": v.valid_until.isoformat(),
        "description": v.description,
        "remaining_usage": v.remaining_usage,
    }
    if v.category == VoucherCategory.discount:
        out["discount_kind"] = v.discount_kind.value if v.discount_kind else None
        out["discount_value"] = v.discount_value
        if v.discount_kind == DiscountKind.percentage:
            out["discount_cap"] = v.discount_cap
    else:
        out["shipping_discount_value"] = v.shipping_discount_value
    if admin:
        out.update(
            {
                "usage_limit": v.usage_limit,
                "usage_count": v.usage_count,
                "active": v.active,
                "is_deleted": v.is_deleted,
                "created_at": v.created_at.isoformat() if v.created_at else None,
                "updated_at": v.updated_at.isoformat() if v.updated_at else None,
            }
        )
    return out


def available_vouchers(
    db: Session,
    now: datetime,
    *,
    min_order_value: int | None = None,
    category: VoucherCategory | None = None,
    discount_kind: DiscountKind | None = None,
    sort: str = "created_at",
) -> list[Voucher]:
    """
    Active, undeleted vouchers inside their validity window with uses left.
    min_order_value keeps only vouchers an order of that value qualifies for.
    """
    stmt = select(Voucher).where(
        Voucher.active == True,  # noqa: E712
        Voucher.is_deleted == False,  # noqa: E712
        Voucher.valid_from <= now,
        Voucher.valid_until >= now,
        Voucher.usage_count < Voucher.usage_limit,
    )
    if min_order_value is not None:
        stmt = stmt.where(Voucher.min_order_value <= min_order_value)
    if category is not None:
        stmt = stmt.where(Voucher.category == category)
    if discount_kind is not None and category == VoucherCategory.discount:
        stmt = stmt.where(Voucher.discount_kind == discount_kind)
    if sort == "discount_value":
        stmt = stmt.order_by(Voucher.discount_value.desc(), Voucher.created_at.desc())
    elif sort == "shipping_discount_value":
        stmt = stmt.order_by(Voucher.shipping_discount_value.desc(), Voucher.created_at.desc())
    else:
        stmt = stmt.order_by(Voucher.created_at.desc())
    try:
        return list(db.exec(stmt).all())
    except SQLAlchemyError as e:
        log.exception("Voucher catalogue read failed: %s", e)
        raise CatalogUnavailable(str(e)) from e


def usage_history(db: Session, user_id: str, page: int, limit: int) -> dict:
    """A user's redemptions, newest first, paginated."""
    total = int(
        db.exec(select(func.count()).select_from(VoucherRedemption).where(VoucherRedemption.user_id == user_id)).one()
        or 0
    )
    stmt = (
        select(VoucherRedemption, Voucher)
        .join(Voucher, Voucher.voucher_id == VoucherRedemption.voucher_id)
        .where(VoucherRedemption.user_id == user_id)
        .order_by(VoucherRedemption.redeemed_at.desc(), VoucherRedemption.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = list(db.exec(stmt).all())
    return {
        "redemptions": [
            {
                "voucher_id": r.voucher_id,
                "category": v.category.value,
                "order_id": r.order_id,
                "discount_amount": r.discount_amount,
                "redeemed_at": r.redeemed_at.isoformat(),
                "description": v.description,
            }
            for r, v in rows
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }
