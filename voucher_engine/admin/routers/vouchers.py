"""Voucher catalogue management: create, list, detail, update, soft delete."""
import math
from typing import Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import TypeAdapter, ValidationError
from sqlmodel import Session, func, select

from voucher_engine.admin.deps import require_admin
from voucher_engine.core.clock import utcnow
from voucher_engine.core.database import get_db
from voucher_engine.models import Voucher
from voucher_engine.schemas import VoucherCategory, VoucherCreate, VoucherUpdate
from voucher_engine.schemas.voucher import DiscountVoucherCreate, ShippingVoucherCreate, normalize_voucher_id
from voucher_engine.services.catalog import serialize_voucher

router = APIRouter()

_create_adapter = TypeAdapter(VoucherCreate)

# Terms fields that only belong to one category; cleared when they don't apply
_DISCOUNT_FIELDS = ("discount_kind", "discount_value", "discount_cap")
_SHIPPING_FIELDS = ("shipping_discount_value",)


def _get_or_404(db: Session, voucher_id: str) -> Voucher:
    voucher = db.get(Voucher, normalize_voucher_id(voucher_id))
    if not voucher or voucher.is_deleted:
        raise HTTPException(status_code=404, detail="Voucher not found.")
    return voucher


def _apply_terms(voucher: Voucher, data) -> None:
    for key, value in data.model_dump(exclude={"voucher_id", "category"}).items():
        setattr(voucher, key, value)
    blank = _SHIPPING_FIELDS if data.category == VoucherCategory.discount else _DISCOUNT_FIELDS
    for key in blank:
        setattr(voucher, key, None)


@router.post("", status_code=201)
@router.post("/", status_code=201, include_in_schema=False)
def voucher_create(
    data: Union[DiscountVoucherCreate, ShippingVoucherCreate] = Body(..., discriminator="category"),
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    if db.get(Voucher, data.voucher_id):
        raise HTTPException(status_code=400, detail="Voucher ID already exists.")
    voucher = Voucher(
        voucher_id=data.voucher_id,
        category=VoucherCategory(data.category),
        usage_limit=data.usage_limit,
        valid_from=data.valid_from,
        valid_until=data.valid_until,
    )
    _apply_terms(voucher, data)
    db.add(voucher)
    db.commit()
    db.refresh(voucher)
    return {"success": True, "message": "Voucher created.", "voucher": serialize_voucher(voucher, admin=True)}


@router.get("")
@router.get("/", include_in_schema=False)
def voucher_list(
    _=Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    category: VoucherCategory | None = None,
    status: str | None = Query(None, pattern="^(active|inactive)$"),
):
    conditions = [Voucher.is_deleted == False]  # noqa: E712
    if search and search.strip():
        conditions.append(Voucher.voucher_id.contains(normalize_voucher_id(search)))
    if category is not None:
        conditions.append(Voucher.category == category)
    if status == "active":
        conditions.append(Voucher.active == True)  # noqa: E712
    elif status == "inactive":
        conditions.append(Voucher.active == False)  # noqa: E712
    total = int(db.exec(select(func.count()).select_from(Voucher).where(*conditions)).one() or 0)
    rows = list(
        db.exec(
            select(Voucher)
            .where(*conditions)
            .order_by(Voucher.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return {
        "success": True,
        "vouchers": [serialize_voucher(v, admin=True) for v in rows],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


@router.get("/{voucher_id}")
def voucher_detail(
    voucher_id: str,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"success": True, "voucher": serialize_voucher(_get_or_404(db, voucher_id), admin=True)}


@router.put("/{voucher_id}")
def voucher_update(
    voucher_id: str,
    data: VoucherUpdate,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Merges the given fields into the stored terms and re-checks them as a whole."""
    voucher = _get_or_404(db, voucher_id)
    merged = {
        "voucher_id": voucher.voucher_id,
        "category": voucher.category.value,
        "min_order_value": voucher.min_order_value,
        "usage_limit": voucher.usage_limit,
        "max_per_user": voucher.max_per_user,
        "valid_from": voucher.valid_from,
        "valid_until": voucher.valid_until,
        "active": voucher.active,
        "description": voucher.description,
    }
    keys = _DISCOUNT_FIELDS if voucher.category == VoucherCategory.discount else _SHIPPING_FIELDS
    merged.update({k: getattr(voucher, k) for k in keys})
    changes = data.model_dump(exclude_unset=True)
    foreign = set(changes) & set(_SHIPPING_FIELDS if voucher.category == VoucherCategory.discount else _DISCOUNT_FIELDS)
    if foreign:
        raise HTTPException(status_code=400, detail=f"Fields not valid for a {voucher.category.value} voucher: {', '.join(sorted(foreign))}")
    merged.update(changes)
    try:
        checked = _create_adapter.validate_python(merged)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False)[0].get("msg", "Invalid voucher."))
    if checked.usage_limit < (voucher.usage_count or 0):
        raise HTTPException(status_code=400, detail="usage_limit cannot be lower than the current usage_count.")
    _apply_terms(voucher, checked)
    voucher.updated_at = utcnow()
    db.add(voucher)
    db.commit()
    db.refresh(voucher)
    return {"success": True, "message": "Voucher updated.", "voucher": serialize_voucher(voucher, admin=True)}


@router.delete("/{voucher_id}")
def voucher_delete(
    voucher_id: str,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    voucher = _get_or_404(db, voucher_id)
    voucher.is_deleted = True
    voucher.updated_at = utcnow()
    db.add(voucher)
    db.commit()
    return {"success": True, "message": "Voucher deleted."}
