"""Inspection checklist validation and compliance scoring"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping

from homestay_registry.domain.models import ComplianceSummary, DocumentStatus
from homestay_registry.domain.exceptions import ValidationError

MANDATORY_CRITERIA = (
    "application_form",
    "documents",
    "online_payment",
    "well_maintained",
    "clean_rooms",
    "comfortable_bedding",
    "room_size",
    "clean_kitchen",
    "cutlery_crockery",
    "water_facility",
    "waste_disposal",
    "energy_saving_lights",
    "visitor_book",
    "doctor_details",
    "luggage_assistance",
    "fire_equipment",
    "guest_register",
    "cctv_cameras",
)

DESIRABLE_CRITERIA = (
    "parking",
    "attached_bathroom",
    "toilet_amenities",
    "hot_cold_water",
    "water_conservation",
    "dining_area",
    "wardrobe",
    "storage",
    "furniture",
    "laundry",
    "refrigerator",
    "lounge",
    "heating_cooling",
    "luggage_help",
    "safe_storage",
    "security_guard",
    "himachali_crafts",
    "rainwater_harvesting",
)

MIN_FINDINGS_LENGTH = 20


def validate_checklist(checklist: Mapping[str, bool], criteria: tuple, field: str) -> Dict[str, bool]:
    """Every named criterion must be answered with a boolean; unknown names are rejected"""
    unknown = sorted(set(checklist) - set(criteria))
    if unknown:
        raise ValidationError(f"Unknown {field} criteria: {', '.join(unknown)}", field=field)

    missing = [name for name in criteria if name not in checklist]
    if missing:
        raise ValidationError(f"Incomplete {field}: missing {', '.join(missing)}", field=field)

    for name in criteria:
        if not isinstance(checklist[name], bool):
            raise ValidationError(f"{field}.{name} must be true or false", field=field)

    return {name: checklist[name] for name in criteria}


def _percentage(passed: int, total: int) -> int:
    if total == 0:
        return 0
    ratio = Decimal(passed) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_compliance(mandatory: Mapping[str, bool], desirable: Mapping[str, bool]) -> ComplianceSummary:
    """Share of satisfied criteria per checklist and overall, as rounded percentages"""
    mandatory_passed = sum(1 for v in mandatory.values() if v)
    desirable_passed = sum(1 for v in desirable.values() if v)

    return ComplianceSummary(
        mandatory_percentage=_percentage(mandatory_passed, len(mandatory)),
        desirable_percentage=_percentage(desirable_passed, len(desirable)),
        overall_percentage=_percentage(mandatory_passed + desirable_passed, len(mandatory) + len(desirable)),
        failed_mandatory=[name for name, ok in mandatory.items() if not ok],
    )


def scrutiny_progress(statuses: List[str]) -> float:
    """Fraction of documents with a decision; 0.0 when there are no documents"""
    if not statuses:
        return 0.0
    decided = sum(1 for s in statuses if s != DocumentStatus.PENDING.value)
    return decided / len(statuses)


def unresolved_documents(statuses: Mapping[str, str]) -> List[str]:
    """Document ids that were not verified; carried forward to the DTDO as open risk"""
    return [doc_id for doc_id, status in statuses.items() if status != DocumentStatus.VERIFIED.value]
