"""Category suitability rules based on room count and average nightly rate"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from homestay_registry.domain.models import Category, CategoryValidationResult, RoomRateSummary


@dataclass(frozen=True)
class CategoryRequirements:
    min_rooms: int
    min_average_rate: Decimal
    max_average_rate: Optional[Decimal]  # None = no upper bound
    gstin_required: bool


CATEGORY_REQUIREMENTS = {
    Category.DIAMOND: CategoryRequirements(5, Decimal("10000"), None, True),
    Category.GOLD: CategoryRequirements(1, Decimal("3000"), Decimal("10000"), True),
    Category.SILVER: CategoryRequirements(1, Decimal("0"), Decimal("3000"), False),
}

ROOM_TYPES = (
    ("single_bed_rooms", "single_bed_room_rate"),
    ("double_bed_rooms", "double_bed_room_rate"),
    ("family_suites", "family_suite_rate"),
)


def calculate_average_room_rate(room_details: Mapping[str, object]) -> RoomRateSummary:
    """
    Average nightly rate across room types: total revenue / total rooms.

    Highest and lowest ignore room types with no rooms or no rate.
    """
    total_rooms = 0
    total_revenue = Decimal("0")
    rates = []

    for count_key, rate_key in ROOM_TYPES:
        count = int(room_details.get(count_key) or 0)
        rate = Decimal(str(room_details.get(rate_key) or 0))
        total_rooms += count
        total_revenue += count * rate
        if count and rate:
            rates.append(rate)

    if total_rooms == 0:
        zero = Decimal("0")
        return RoomRateSummary(0, zero, zero, zero, zero)

    average = (total_revenue / total_rooms).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return RoomRateSummary(
        total_rooms=total_rooms,
        total_revenue=total_revenue,
        average_rate=average,
        highest_rate=max(rates) if rates else Decimal("0"),
        lowest_rate=min(rates) if rates else Decimal("0"),
    )


def suggest_category(total_rooms: int, average_rate: Decimal) -> Category:
    """Pick the category a property qualifies for"""
    average_rate = Decimal(str(average_rate))
    if total_rooms >= 5 and average_rate > 10000:
        return Category.DIAMOND
    if 3000 <= average_rate <= 10000:
        return Category.GOLD
    # High rate but too few rooms for diamond
    if average_rate > 10000:
        return Category.GOLD
    return Category.SILVER


def validate_category_selection(
    category: Category,
    total_rooms: int,
    average_rate: Decimal,
) -> CategoryValidationResult:
    """Check a selected category against room count and average rate"""
    category = Category(category)
    average_rate = Decimal(str(average_rate))
    requirements = CATEGORY_REQUIREMENTS[category]
    result = CategoryValidationResult(is_valid=True)
    label = category.value.capitalize()

    if total_rooms < requirements.min_rooms:
        result.errors.append(
            f"{label} category requires minimum {requirements.min_rooms} rooms. "
            f"You have {total_rooms} room{'' if total_rooms == 1 else 's'}."
        )

    if average_rate < requirements.min_average_rate:
        result.errors.append(
            f"{label} category requires average rate >= {requirements.min_average_rate}/night. "
            f"Your average rate is {average_rate.to_integral_value(ROUND_HALF_UP)}/night."
        )
        if category == Category.DIAMOND:
            result.suggested_category = Category.GOLD
        elif category == Category.GOLD:
            result.suggested_category = Category.SILVER

    if requirements.max_average_rate is not None and average_rate > requirements.max_average_rate:
        result.warnings.append(
            f"Your average room rate ({average_rate.to_integral_value(ROUND_HALF_UP)}) exceeds the typical "
            f"{category.value} category maximum ({requirements.max_average_rate}). Consider upgrading."
        )
        if category == Category.SILVER:
            result.suggested_category = Category.GOLD
        elif category == Category.GOLD and total_rooms >= 5:
            result.suggested_category = Category.DIAMOND

    result.is_valid = not result.errors
    return result
