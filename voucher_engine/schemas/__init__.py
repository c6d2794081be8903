from .voucher import (
    DiscountKind,
    DiscountTerms,
    ErrorKind,
    OrderContext,
    RedemptionResult,
    RedemptionState,
    SelectionOutcome,
    SelectionSummary,
    ShippingTerms,
    UseMultipleRequest,
    UseRequest,
    ValidateMultipleRequest,
    ValidateRequest,
    VoucherCategory,
    VoucherCreate,
    VoucherRef,
    VoucherTerms,
    VoucherUpdate,
    VoucherVerdict,
)

__all__ = [
    "DiscountKind",
    "DiscountTerms",
    "ErrorKind",
    "OrderContext",
    "RedemptionResult",
    "RedemptionState",
    "SelectionOutcome",
    "SelectionSummary",
    "ShippingTerms",
    "UseMultipleRequest",
    "UseRequest",
    "ValidateMultipleRequest",
    "ValidateRequest",
    "VoucherCategory",
    "VoucherCreate",
    "VoucherRef",
    "VoucherTerms",
    "VoucherUpdate",
    "VoucherVerdict",
]
