"""Registration fee calculator - core business logic for homestay fees"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Dict, Mapping, Optional

from homestay_registry.domain.models import Category, DiscountEligibility, FeeBreakdown
from homestay_registry.domain.exceptions import ValidationError
from homestay_registry.config import settings

MIN_ROOMS = 1
MAX_ROOMS = 50
MIN_VALIDITY_YEARS = 1
MAX_VALIDITY_YEARS = 3
LUMP_SUM_VALIDITY_YEARS = 3

CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimal places using round-half-up"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_category(value) -> Category:
    try:
        return Category(value)
    except ValueError:
        raise ValidationError(
            f"Invalid category '{value}'. Must be one of: diamond, gold, silver",
            field="category",
        )


def _validate_int(value, name: str, low: int, high: int) -> int:
    # bool is an int subclass; True rooms is not a room count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name)
    if value < low or value > high:
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}", field=name)
    return value


def _lookup_rates(category: Category, rate_table: Mapping[str, Mapping[str, Decimal]]) -> tuple[Decimal, Decimal]:
    try:
        rates = rate_table[category.value]
        return Decimal(str(rates["base"])), Decimal(str(rates["per_room"]))
    except (KeyError, InvalidOperation):
        raise ValidationError(f"No fee rates configured for category '{category.value}'", field="category")


def compute_fee(
    category,
    total_rooms: int,
    validity_years: int,
    eligibility: Optional[DiscountEligibility] = None,
    rate_table: Optional[Mapping[str, Mapping[str, Decimal]]] = None,
    validity_discount_rate: Optional[Decimal] = None,
    female_owner_discount_rate: Optional[Decimal] = None,
    special_region_discount_rate: Optional[Decimal] = None,
    gst_rate: Optional[Decimal] = None,
) -> FeeBreakdown:
    """
    Compute the registration fee for a homestay.

    Steps:
    - subtotal_one_year = base + per_room x rooms
    - total_before_discounts = subtotal_one_year x validity_years (no proration)
    - each discount is a percentage of total_before_discounts, computed
      independently and summed (never compounded)
    - GST is applied to the post-discount amount

    Policy values default to the configured settings.

    Raises:
        ValidationError: invalid category, rooms outside 1-50 or years outside 1-3

    Example:
        silver, 4 rooms, 1 year, no discounts
        2000 + 200 x 4 = 2800 -> x 1.18 = 3304.00
    """
    category = parse_category(category)
    _validate_int(total_rooms, "total_rooms", MIN_ROOMS, MAX_ROOMS)
    _validate_int(validity_years, "validity_years", MIN_VALIDITY_YEARS, MAX_VALIDITY_YEARS)
    eligibility = eligibility or DiscountEligibility()

    rate_table = rate_table if rate_table is not None else settings.fee_rates
    validity_rate = _rate(validity_discount_rate, settings.validity_discount_rate)
    female_rate = _rate(female_owner_discount_rate, settings.female_owner_discount_rate)
    region_rate = _rate(special_region_discount_rate, settings.special_region_discount_rate)
    gst = _rate(gst_rate, settings.gst_rate)
    if validity_rate + female_rate + region_rate > 1:
        raise ValidationError("Configured discount percentages exceed 100%")

    base_fee, per_room_fee = _lookup_rates(category, rate_table)

    subtotal_one_year = base_fee + per_room_fee * total_rooms
    total_before_discounts = round_money(subtotal_one_year * validity_years)

    validity_discount = Decimal("0")
    if validity_years == LUMP_SUM_VALIDITY_YEARS:
        validity_discount = round_money(total_before_discounts * validity_rate)

    female_owner_discount = Decimal("0")
    if eligibility.is_female_owner:
        female_owner_discount = round_money(total_before_discounts * female_rate)

    special_region_discount = Decimal("0")
    if eligibility.is_special_region:
        special_region_discount = round_money(total_before_discounts * region_rate)

    total_discount = round_money(validity_discount + female_owner_discount + special_region_discount)
    net_fee = round_money(total_before_discounts - total_discount)
    total_fee = round_money(net_fee * (Decimal("1") + gst))

    return FeeBreakdown(
        category=category,
        total_rooms=total_rooms,
        validity_years=validity_years,
        base_fee=round_money(base_fee),
        per_room_fee=round_money(per_room_fee),
        subtotal_one_year=round_money(subtotal_one_year),
        total_before_discounts=total_before_discounts,
        validity_discount=round_money(validity_discount),
        female_owner_discount=round_money(female_owner_discount),
        special_region_discount=round_money(special_region_discount),
        total_discount=total_discount,
        net_fee=net_fee,
        gst_rate=gst,
        gst_amount=round_money(total_fee - net_fee),
        total_fee=total_fee,
    )


def _rate(explicit: Optional[Decimal], configured: Decimal) -> Decimal:
    value = Decimal(str(explicit if explicit is not None else configured))
    if value < 0:
        raise ValidationError("Fee policy percentages must not be negative")
    return value


def fee_snapshot(breakdown: FeeBreakdown) -> Dict[str, Decimal]:
    """Columns persisted on the application when the fee is locked"""
    return {
        "base_fee": breakdown.base_fee,
        "per_room_fee": breakdown.per_room_fee,
        "total_before_discounts": breakdown.total_before_discounts,
        "validity_discount": breakdown.validity_discount,
        "female_owner_discount": breakdown.female_owner_discount,
        "special_region_discount": breakdown.special_region_discount,
        "total_discount": breakdown.total_discount,
        "net_fee": breakdown.net_fee,
        "gst_amount": breakdown.gst_amount,
        "total_fee": breakdown.total_fee,
    }
