"""
Checkout helpers: coupon model and display formatting.

Payment itself runs in the provider's embedded checkout; this module only
shapes what the checkout step shows around it.
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass
class ValidatedCoupon:
    """Coupon as returned by /api/coupons/validate."""
    code: str
    name: str | None = None
    coupon_type: str = "percent"  # "percent" | "amount"
    percent_off: float | None = None
    amount_off: int | None = None  # minor units (cents)
    currency: str | None = None
    duration: str = "once"
    duration_in_months: int | None = None
    max_redemptions: int | None = None
    redeem_by: str | None = None  # ISO timestamp

    _WIRE_NAMES = {
        "couponType": "coupon_type",
        "percentOff": "percent_off",
        "amountOff": "amount_off",
        "durationInMonths": "duration_in_months",
        "maxRedemptions": "max_redemptions",
        "redeemBy": "redeem_by",
    }

    @classmethod
    def from_api(cls, data: dict) -> "ValidatedCoupon":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = cls._WIRE_NAMES.get(key, key)
            if name in known:
                values[name] = value
        return cls(**values)


def normalize_coupon_code(code: str) -> str:
    return code.strip().upper()


def format_coupon_savings(coupon: ValidatedCoupon) -> str:
    """E.g. "20% off your subscription" or "$10.00 off your subscription"."""
    if coupon.coupon_type == "percent" and coupon.percent_off is not None:
        return f"{coupon.percent_off:g}% off your subscription"

    if coupon.coupon_type == "amount" and coupon.amount_off is not None:
        currency = (coupon.currency or "usd").upper()
        amount = coupon.amount_off / 100
        if currency == "USD":
            return f"${amount:,.2f} off your subscription"
        return f"{amount:,.2f} {currency} off your subscription"

    return "Discount applied"


def format_coupon_expiration(coupon: ValidatedCoupon) -> str | None:
    """"Mar 5, 2027" style redeem-by date, or None."""
    if not coupon.redeem_by:
        return None
    try:
        when = datetime.fromisoformat(coupon.redeem_by.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable coupon redeem_by: {coupon.redeem_by}")
        return None
    return f"{when:%b} {when.day}, {when.year}"
