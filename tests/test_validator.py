"""Single voucher checks: rule order, discount amounts, rounding."""
from datetime import timedelta

import pytest

from conftest import NOW, build_voucher
from voucher_engine.schemas import DiscountKind, ErrorKind, OrderContext, VoucherCategory
from voucher_engine.services.validator import compute_discount, round_money, validate_voucher


def _ctx(subtotal=300_000, shipping_cost=30_000):
    return OrderContext(subtotal=subtotal, shipping_cost=shipping_cost, user_id="u1")


def _check(voucher, ctx=None, user_redemptions=0, **kwargs):
    return validate_voucher(voucher, ctx or _ctx(), user_redemptions=user_redemptions, now=NOW, **kwargs)


def test_missing_voucher_is_unavailable():
    verdict = _check(None, voucher_id="NOPE")
    assert verdict.valid is False
    assert verdict.reason == ErrorKind.VoucherUnavailable
    assert verdict.voucher_id == "NOPE"
    assert verdict.discount_amount == 0


@pytest.mark.parametrize(
    "overrides",
    [{"active": False}, {"is_deleted": True}],
)
def test_inactive_or_deleted_is_unavailable(overrides):
    assert _check(build_voucher("V1", **overrides)).reason == ErrorKind.VoucherUnavailable


def test_category_mismatch_is_unavailable():
    verdict = _check(build_voucher("V1"), category=VoucherCategory.shipping)
    assert verdict.reason == ErrorKind.VoucherUnavailable


def test_not_yet_active_and_expired():
    early = build_voucher("V1", valid_from=NOW + timedelta(seconds=1))
    late = build_voucher("V2", valid_until=NOW - timedelta(seconds=1))
    assert _check(early).reason == ErrorKind.NotYetActive
    assert _check(late).reason == ErrorKind.Expired


def test_window_bounds_are_inclusive():
    assert _check(build_voucher("V1", valid_from=NOW)).valid
    assert _check(build_voucher("V2", valid_until=NOW)).valid


def test_min_order_not_met_message_names_threshold():
    verdict = _check(build_voucher("V1", min_order_value=500_000))
    assert verdict.reason == ErrorKind.MinOrderNotMet
    assert "500,000" in verdict.message


def test_usage_and_user_limits():
    exhausted = build_voucher("V1", usage_limit=5, usage_count=5)
    assert _check(exhausted).reason == ErrorKind.UsageLimitExceeded
    assert _check(build_voucher("V2", max_per_user=2), user_redemptions=2).reason == ErrorKind.UserLimitExceeded
    assert _check(build_voucher("V3", max_per_user=2), user_redemptions=1).valid


def test_first_failing_rule_wins():
    # Expired, below minimum and exhausted all at once: the window is checked first
    voucher = build_voucher(
        "V1",
        valid_until=NOW - timedelta(days=1),
        min_order_value=1_000_000,
        usage_limit=1,
        usage_count=1,
    )
    assert _check(voucher).reason == ErrorKind.Expired
    voucher = build_voucher("V2", min_order_value=1_000_000, usage_limit=1, usage_count=1)
    assert _check(voucher).reason == ErrorKind.MinOrderNotMet


def test_percentage_discount_is_capped():
    voucher = build_voucher("V1", discount_kind=DiscountKind.percentage, discount_value=20, discount_cap=50_000)
    verdict = _check(voucher, _ctx(subtotal=500_000))
    assert verdict.valid
    assert verdict.discount_amount == 50_000


def test_percentage_without_cap():
    voucher = build_voucher("V1", discount_kind=DiscountKind.percentage, discount_value=20)
    assert _check(voucher, _ctx(subtotal=500_000)).discount_amount == 100_000


def test_percentage_rounds_half_up():
    voucher = build_voucher("V1", discount_kind=DiscountKind.percentage, discount_value=15)
    # 15% of 10,001 = 1,500.15; 15% of 10,010 = 1,501.5
    assert compute_discount(voucher.terms(), _ctx(subtotal=10_001)) == 1_500
    assert compute_discount(voucher.terms(), _ctx(subtotal=10_010)) == 1_502
    assert round_money(2.5) == 3


def test_fixed_discount_never_exceeds_subtotal():
    voucher = build_voucher("V1", discount_value=50_000)
    assert _check(voucher, _ctx(subtotal=10_000)).discount_amount == 10_000


def test_shipping_discount_clamped_to_shipping_cost():
    voucher = build_voucher("S1", VoucherCategory.shipping, shipping_discount_value=15_000)
    assert _check(voucher, _ctx(shipping_cost=30_000)).discount_amount == 15_000
    assert _check(voucher, _ctx(shipping_cost=10_000)).discount_amount == 10_000
    assert _check(voucher, _ctx(shipping_cost=0)).discount_amount == 0


def test_shipping_terms_ignore_discount_fields():
    voucher = build_voucher(
        "S1",
        VoucherCategory.shipping,
        shipping_discount_value=5_000,
        discount_kind=DiscountKind.percentage,
        discount_value=90,
    )
    assert _check(voucher).discount_amount == 5_000
