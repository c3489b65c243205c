"""
Amount calculator - pure money math for orders, payouts and refunds.

Pricing model, for a service listed at ₹10,000:

- platform commission (14% of price): ₹1,400, deducted from the freelancer
- GST (18% of the commission only): ₹252, paid by the client
- client pays price + GST: ₹10,252
- freelancer receives price - commission: ₹8,600

Refund after capture keeps a 4% processing fee on the price and never returns the
GST collected at capture. Every value is a ``Decimal`` quantized to paise with
ROUND_HALF_UP; floats are never used.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from domain.common.exceptions import DomainValidationException


COMMISSION_RATE = Decimal("0.14")
GST_RATE = Decimal("0.18")
REFUND_FEE_RATE = Decimal("0.04")
# price -> total multiplier when GST is charged on the commission only (1.0252)
TOTAL_MULTIPLIER = Decimal("1") + COMMISSION_RATE * GST_RATE

PAISE = Decimal("0.01")
ZERO = Decimal("0.00")

AmountLike = Union[Decimal, int, str]


def quantize(value: Decimal) -> Decimal:
    return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def to_decimal(value: AmountLike, *, field: str = "amount") -> Decimal:
    if isinstance(value, float):
        # floats carry binary drift; callers must pass str/int/Decimal
        raise DomainValidationException("Money amounts must not be floats", field=field)
    try:
        amount = Decimal(str(value))
    except Exception:
        raise DomainValidationException(f"Invalid money amount: {value!r}", field=field)
    if not amount.is_finite():
        raise DomainValidationException(f"Invalid money amount: {value!r}", field=field)
    return quantize(amount)


def to_minor(amount: Decimal) -> int:
    """Rupees -> paise, as gateways expect integer minor units."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor(minor: int) -> Decimal:
    return quantize(Decimal(int(minor)) / 100)


@dataclass(frozen=True)
class OrderAmounts:
    price: Decimal
    platform_commission: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    freelancer_amount: Decimal

    @property
    def platform_net_revenue(self) -> Decimal:
        # GST is passed through to the government
        return self.platform_commission


@dataclass(frozen=True)
class RefundBreakdown:
    price: Decimal
    amount_paid: Decimal
    processing_fee: Decimal
    gst_retained: Decimal
    refund_amount: Decimal

    @property
    def client_loss(self) -> Decimal:
        return quantize(self.amount_paid - self.refund_amount)


def calculate_order_amounts(price: AmountLike) -> OrderAmounts:
    """Forward calculation used once, at order creation."""
    p = to_decimal(price, field="price")
    if p < 0:
        raise DomainValidationException(f"Price must not be negative: {p}", field="price")
    commission = quantize(p * COMMISSION_RATE)
    gst = quantize(commission * GST_RATE)
    return OrderAmounts(
        price=p,
        platform_commission=commission,
        gst_amount=gst,
        total_amount=quantize(p + gst),
        freelancer_amount=quantize(p - commission),
    )


def calculate_refund(price: AmountLike) -> RefundBreakdown:
    """Fee-bearing refund for a cancellation after capture."""
    amounts = calculate_order_amounts(price)
    fee = quantize(amounts.price * REFUND_FEE_RATE)
    return RefundBreakdown(
        price=amounts.price,
        amount_paid=amounts.total_amount,
        processing_fee=fee,
        gst_retained=amounts.gst_amount,
        refund_amount=quantize(amounts.price - fee),
    )


def calculate_full_refund(amount_paid: AmountLike) -> RefundBreakdown:
    """Decline path: no work was accepted, everything captured goes back."""
    paid = to_decimal(amount_paid, field="amount_paid")
    return RefundBreakdown(
        price=paid,
        amount_paid=paid,
        processing_fee=ZERO,
        gst_retained=ZERO,
        refund_amount=paid,
    )


def recover_price(total_amount: AmountLike) -> Decimal:
    """Inverse of the forward calculation: price from a captured total.

    ``total / 1.0252`` can land one paisa off after the forward rounding, so the
    neighbouring paise are checked and the one that reproduces ``total`` exactly
    wins. Totals that no price produces fall back to the plain division.
    """
    total = to_decimal(total_amount, field="total_amount")
    estimate = quantize(total / TOTAL_MULTIPLIER)
    for step in (0, -1, 1, -2, 2, -3, 3):
        candidate = estimate + PAISE * step
        if candidate < 0:
            continue
        if calculate_order_amounts(candidate).total_amount == total:
            return candidate
    return estimate


def payout_from_total(total_amount: AmountLike) -> Decimal:
    """Freelancer payout recomputed from what the client paid (manual payout tooling)."""
    return calculate_order_amounts(recover_price(total_amount)).freelancer_amount
