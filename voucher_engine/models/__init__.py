from .voucher import Voucher, VoucherRedemption

__all__ = [
    "Voucher",
    "VoucherRedemption",
]
