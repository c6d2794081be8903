"""Voucher types shared by the engine, the API and the admin routes."""
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from voucher_engine.core.clock import to_naive_utc

VOUCHER_ID_RE = re.compile(r"^[A-Z0-9]+$")


class VoucherCategory(str, Enum):
    discount = "discount"
    shipping = "shipping"


class DiscountKind(str, Enum):
    fixed = "fixed"
    percentage = "percentage"


class ErrorKind(str, Enum):
    VoucherUnavailable = "VoucherUnavailable"
    NotYetActive = "NotYetActive"
    Expired = "Expired"
    MinOrderNotMet = "MinOrderNotMet"
    UsageLimitExceeded = "UsageLimitExceeded"
    UserLimitExceeded = "UserLimitExceeded"
    CategoryConflict = "CategoryConflict"
    PartialValidationFailure = "PartialValidationFailure"
    RedemptionRolledBack = "RedemptionRolledBack"
    CatalogUnavailable = "CatalogUnavailable"


class RedemptionState(str, Enum):
    proposed = "Proposed"
    validating = "Validating"
    committed = "Committed"
    rejected = "Rejected"


def normalize_voucher_id(value: str) -> str:
    return (value or "").strip().upper()


# ---------- Terms: what a voucher discounts, tagged by category ----------


class DiscountTerms(BaseModel):
    """Reduces the product subtotal: a fixed amount or a percentage, optionally capped."""

    model_config = ConfigDict(frozen=True)

    category: Literal["discount"] = "discount"
    kind: DiscountKind
    value: int
    cap: int | None = None  # only read for percentage vouchers


class ShippingTerms(BaseModel):
    """Reduces the shipping fee by a fixed amount."""

    model_config = ConfigDict(frozen=True)

    category: Literal["shipping"] = "shipping"
    value: int


VoucherTerms = Annotated[Union[DiscountTerms, ShippingTerms], Field(discriminator="category")]


# ---------- Engine inputs and results ----------


class OrderContext(BaseModel):
    """Order facts a selection is judged against. order_id is only known at commit time."""

    model_config = ConfigDict(frozen=True)

    subtotal: int = Field(ge=0)
    shipping_cost: int = Field(default=0, ge=0)
    user_id: str
    order_id: str | None = None


class VoucherRef(BaseModel):
    voucher_id: str = Field(min_length=1, max_length=64)
    category: VoucherCategory

    @field_validator("voucher_id")
    @classmethod
    def normalize_id(cls, v: str) -> str:
        return normalize_voucher_id(v)


class VoucherVerdict(BaseModel):
    voucher_id: str
    category: VoucherCategory | None = None
    valid: bool
    discount_amount: int = 0
    reason: ErrorKind | None = None
    message: str = ""


class SelectionSummary(BaseModel):
    order_value: int
    shipping_cost: int
    total_discount: int
    final_amount: int
    applied_count: int = Field(serialization_alias="vouchers_applied")
    reason: ErrorKind | None = None


class SelectionOutcome(BaseModel):
    results: list[VoucherVerdict]
    summary: SelectionSummary

    @property
    def conflict(self) -> bool:
        return self.summary.reason == ErrorKind.CategoryConflict


class RedemptionResult(BaseModel):
    success: bool
    state: RedemptionState
    order_id: str
    results: list[VoucherVerdict]
    summary: SelectionSummary
    reason: ErrorKind | None = None
    message: str = ""
    replayed: bool = False


# ---------- HTTP request bodies ----------


class ValidateRequest(BaseModel):
    voucher_id: str = Field(min_length=1, max_length=64)
    user_id: str = Field(min_length=1, max_length=64)
    order_value: int = Field(ge=0)
    shipping_cost: int = Field(default=0, ge=0)
    category: VoucherCategory | None = None

    @field_validator("voucher_id")
    @classmethod
    def normalize_id(cls, v: str) -> str:
        return normalize_voucher_id(v)


class ValidateMultipleRequest(BaseModel):
    vouchers: list[VoucherRef] = Field(min_length=1)
    user_id: str = Field(min_length=1, max_length=64)
    order_value: int = Field(ge=0)
    shipping_cost: int = Field(default=0, ge=0)


class UseRequest(ValidateRequest):
    order_id: str = Field(min_length=1, max_length=64)


class UseMultipleRequest(ValidateMultipleRequest):
    order_id: str = Field(min_length=1, max_length=64)


# ---------- Admin catalogue ----------


class _VoucherCreateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    voucher_id: str = Field(min_length=1, max_length=64)
    min_order_value: int = Field(ge=0)
    usage_limit: int = Field(ge=1)
    max_per_user: int = Field(ge=1)
    valid_from: datetime
    valid_until: datetime
    active: bool = True
    description: str | None = Field(default=None, max_length=500)

    @field_validator("voucher_id")
    @classmethod
    def check_voucher_id(cls, v: str) -> str:
        v = normalize_voucher_id(v)
        if not VOUCHER_ID_RE.match(v):
            raise ValueError("voucher_id may only contain letters and digits")
        return v

    @field_validator("valid_from", "valid_until")
    @classmethod
    def naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class DiscountVoucherCreate(_VoucherCreateBase):
    category: Literal["discount"]
    discount_kind: DiscountKind
    discount_value: int = Field(gt=0)
    discount_cap: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_percentage(self):
        if self.discount_kind == DiscountKind.percentage and self.discount_value > 100:
            raise ValueError("percentage discount_value must be between 1 and 100")
        return self


class ShippingVoucherCreate(_VoucherCreateBase):
    category: Literal["shipping"]
    shipping_discount_value: int = Field(gt=0)


VoucherCreate = Annotated[
    Union[DiscountVoucherCreate, ShippingVoucherCreate],
    Field(discriminator="category"),
]


class VoucherUpdate(BaseModel):
    """Partial update of a voucher's terms. usage_count is not editable here."""

    model_config = ConfigDict(extra="forbid")

    discount_kind: DiscountKind | None = None
    discount_value: int | None = None
    discount_cap: int | None = None
    shipping_discount_value: int | None = None
    min_order_value: int | None = None
    usage_limit: int | None = None
    max_per_user: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    active: bool | None = None
    description: str | None = None
