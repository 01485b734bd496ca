"""POST /v1/fees/quote - fee preview that is never persisted"""

from fastapi import APIRouter

from homestay_registry.api.v1.schemas import (
    CategoryCheckResponse,
    FeeBreakdownResponse,
    FeeQuoteRequest,
    FeeQuoteResponse,
)
from homestay_registry.domain.categories import calculate_average_room_rate, validate_category_selection
from homestay_registry.domain.fees import compute_fee, parse_category
from homestay_registry.domain.models import DiscountEligibility

router = APIRouter()


@router.post("/fees/quote", response_model=FeeQuoteResponse)
def quote(body: FeeQuoteRequest):
    """
    Compute the fee breakdown with the same calculator used at submission.

    When room details are given the category suitability check is returned
    alongside; it never blocks a quote.
    """
    breakdown = compute_fee(
        body.category,
        body.total_rooms,
        body.validity_years,
        DiscountEligibility(is_female_owner=body.is_female_owner, is_special_region=body.is_special_region),
    )

    category_check = None
    if body.room_details is not None:
        summary = calculate_average_room_rate(body.room_details.model_dump())
        result = validate_category_selection(parse_category(body.category), body.total_rooms, summary.average_rate)
        category_check = CategoryCheckResponse(
            is_valid=result.is_valid,
            errors=result.errors,
            warnings=result.warnings,
            suggested_category=result.suggested_category.value if result.suggested_category else None,
            average_rate=summary.average_rate,
        )

    return FeeQuoteResponse(
        breakdown=FeeBreakdownResponse(
            category=breakdown.category.value,
            total_rooms=breakdown.total_rooms,
            validity_years=breakdown.validity_years,
            base_fee=breakdown.base_fee,
            per_room_fee=breakdown.per_room_fee,
            subtotal_one_year=breakdown.subtotal_one_year,
            total_before_discounts=breakdown.total_before_discounts,
            validity_discount=breakdown.validity_discount,
            female_owner_discount=breakdown.female_owner_discount,
            special_region_discount=breakdown.special_region_discount,
            total_discount=breakdown.total_discount,
            net_fee=breakdown.net_fee,
            gst_rate=breakdown.gst_rate,
            gst_amount=breakdown.gst_amount,
            total_fee=breakdown.total_fee,
        ),
        category_check=category_check,
    )
