from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.pricing import (
    calculate_full_refund,
    calculate_order_amounts,
    calculate_refund,
    from_minor,
    payout_from_total,
    recover_price,
    to_decimal,
    to_minor,
)


def test_order_amounts_for_ten_thousand():
    amounts = calculate_order_amounts(Decimal("10000"))
    assert amounts.platform_commission == Decimal("1400.00")
    assert amounts.gst_amount == Decimal("252.00")
    assert amounts.total_amount == Decimal("10252.00")
    assert amounts.freelancer_amount == Decimal("8600.00")
    assert amounts.platform_net_revenue == Decimal("1400.00")


def test_cancellation_refund_keeps_fee_and_gst():
    refund = calculate_refund("10000")
    assert refund.processing_fee == Decimal("400.00")
    assert refund.refund_amount == Decimal("9600.00")
    assert refund.gst_retained == Decimal("252.00")
    assert refund.client_loss == Decimal("652.00")


def test_full_refund_returns_everything():
    refund = calculate_full_refund(Decimal("10252.00"))
    assert refund.refund_amount == Decimal("10252.00")
    assert refund.processing_fee == Decimal("0.00")
    assert refund.client_loss == Decimal("0.00")


def test_rounding_is_half_up_to_paise():
    # 14% of 333.33 = 46.6662 -> 46.67; 18% of 46.67 = 8.4006 -> 8.40
    amounts = calculate_order_amounts("333.33")
    assert amounts.platform_commission == Decimal("46.67")
    assert amounts.gst_amount == Decimal("8.40")
    assert amounts.total_amount == Decimal("341.73")


@pytest.mark.parametrize("price", ["10000", "333.33", "1", "499.99", "12345.67"])
def test_recover_price_inverts_forward_calculation(price):
    total = calculate_order_amounts(price).total_amount
    assert recover_price(total) == Decimal(price).quantize(Decimal("0.01"))


def test_payout_from_total():
    assert payout_from_total("10252.00") == Decimal("8600.00")


def test_minor_units():
    assert to_minor(Decimal("10252.00")) == 1025200
    assert to_minor(Decimal("0.01")) == 1
    assert from_minor(960000) == Decimal("9600.00")


def test_floats_are_rejected():
    with pytest.raises(DomainValidationException):
        to_decimal(10000.0)
    with pytest.raises(DomainValidationException):
        calculate_order_amounts(99.5)


def test_invalid_and_negative_amounts_are_rejected():
    with pytest.raises(DomainValidationException):
        to_decimal("ten")
    with pytest.raises(DomainValidationException):
        to_decimal("NaN")
    with pytest.raises(DomainValidationException):
        calculate_order_amounts("-1")
