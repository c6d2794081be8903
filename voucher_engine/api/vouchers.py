"""Shopper facing voucher routes: catalogue, previews, commits and history."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from voucher_engine.api.deps import get_now
from voucher_engine.core.config import settings
from voucher_engine.core.database import get_db
from voucher_engine.core.rate_limit import commit_limit, limiter, preview_limit
from voucher_engine.schemas import (
    DiscountKind,
    OrderContext,
    RedemptionResult,
    UseMultipleRequest,
    UseRequest,
    ValidateMultipleRequest,
    ValidateRequest,
    VoucherCategory,
)
from voucher_engine.services import catalog, repository
from voucher_engine.services.calculator import single_final_amount
from voucher_engine.services.composer import preview_selection
from voucher_engine.services.ledger import redeem, redeem_single
from voucher_engine.services.validator import message_for, validate_voucher

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vouchers", tags=["vouchers"])


def _redemption_response(result: RedemptionResult) -> dict | JSONResponse:
    body = result.model_dump(mode="json", by_alias=True)
    if not result.success:
        return JSONResponse(status_code=400, content=body)
    return body


@router.get("/available")
@limiter.limit(preview_limit)
def available(
    request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    min_order_value: int | None = Query(None, ge=0),
    category: VoucherCategory | None = None,
    discount_kind: DiscountKind | None = None,
    sort: str = Query("created_at", pattern="^(created_at|discount_value|shipping_discount_value)$"),
):
    vouchers = catalog.available_vouchers(
        db,
        now,
        min_order_value=min_order_value,
        category=category,
        discount_kind=discount_kind,
        sort=sort,
    )
    return {"success": True, "vouchers": [catalog.serialize_voucher(v) for v in vouchers]}


@router.post("/validate")
@limiter.limit(preview_limit)
def validate(
    request: Request,
    body: ValidateRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Preview of one voucher: verdict, discount and payable amount. Nothing is consumed."""
    ctx = OrderContext(subtotal=body.order_value, shipping_cost=body.shipping_cost, user_id=body.user_id)
    voucher = repository.get_voucher(db, body.voucher_id)
    counts = repository.count_user_redemptions(db, [body.voucher_id], body.user_id)
    verdict = validate_voucher(
        voucher,
        ctx,
        user_redemptions=counts.get(body.voucher_id, 0),
        now=now,
        voucher_id=body.voucher_id,
        category=body.category,
    )
    payload = {
        "success": verdict.valid,
        "valid": verdict.valid,
        "voucher": catalog.serialize_voucher(voucher) if verdict.valid else None,
        "discount_amount": verdict.discount_amount,
        "final_amount": single_final_amount(ctx, verdict),
        "reason": verdict.reason.value if verdict.reason else None,
        "message": verdict.message,
    }
    if not verdict.valid:
        return JSONResponse(status_code=400, content=payload)
    return payload


@router.post("/validate-multiple")
@limiter.limit(preview_limit)
def validate_multiple(
    request: Request,
    body: ValidateMultipleRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Preview of a selection; partially valid selections are a normal 200 answer."""
    ctx = OrderContext(subtotal=body.order_value, shipping_cost=body.shipping_cost, user_id=body.user_id)
    outcome = preview_selection(db, body.vouchers, ctx, now)
    payload = {"success": not outcome.conflict, **outcome.model_dump(mode="json", by_alias=True)}
    if outcome.conflict:
        payload["message"] = message_for(outcome.summary.reason)
        return JSONResponse(status_code=400, content=payload)
    return payload


@router.post("/use")
@limiter.limit(commit_limit)
def use(
    request: Request,
    body: UseRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    ctx = OrderContext(
        subtotal=body.order_value,
        shipping_cost=body.shipping_cost,
        user_id=body.user_id,
        order_id=body.order_id,
    )
    result = redeem_single(db, body.voucher_id, ctx, now, category=body.category)
    return _redemption_response(result)


@router.post("/use-multiple")
@limiter.limit(commit_limit)
def use_multiple(
    request: Request,
    body: UseMultipleRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """All-or-nothing commit: either every voucher in the selection is redeemed or none is."""
    ctx = OrderContext(
        subtotal=body.order_value,
        shipping_cost=body.shipping_cost,
        user_id=body.user_id,
        order_id=body.order_id,
    )
    result = redeem(db, body.vouchers, ctx, now)
    return _redemption_response(result)


@router.get("/my-usage/{user_id}")
def my_usage(
    user_id: str,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
):
    limit = min(limit, settings.usage_history_max_limit)
    return {"success": True, **catalog.usage_history(db, user_id, page, limit)}
