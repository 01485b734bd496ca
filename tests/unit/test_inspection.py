"""Unit tests for inspection checklist validation and compliance"""

import pytest
from homestay_registry.domain.exceptions import ValidationError
from homestay_registry.domain.inspection import (
    DESIRABLE_CRITERIA,
    MANDATORY_CRITERIA,
    compute_compliance,
    scrutiny_progress,
    unresolved_documents,
    validate_checklist,
)


def test_checklists_have_eighteen_criteria():
    """Test both checklists carry 18 distinct criteria"""
    assert len(set(MANDATORY_CRITERIA)) == 18
    assert len(set(DESIRABLE_CRITERIA)) == 18


def test_validate_checklist_complete():
    """Test a fully answered checklist is returned in criteria order"""
    answers = {name: True for name in reversed(MANDATORY_CRITERIA)}

    result = validate_checklist(answers, MANDATORY_CRITERIA, "mandatory_checklist")

    assert list(result) == list(MANDATORY_CRITERIA)


def test_validate_checklist_missing_criterion():
    """Test an unanswered criterion is rejected"""
    answers = {name: True for name in MANDATORY_CRITERIA[1:]}

    with pytest.raises(ValidationError) as exc_info:
        validate_checklist(answers, MANDATORY_CRITERIA, "mandatory_checklist")
    assert exc_info.value.field == "mandatory_checklist"
    assert "application_form" in str(exc_info.value)


def test_validate_checklist_unknown_criterion():
    """Test names outside the checklist are rejected"""
    answers = {name: True for name in DESIRABLE_CRITERIA}
    answers["swimming_pool"] = True

    with pytest.raises(ValidationError) as exc_info:
        validate_checklist(answers, DESIRABLE_CRITERIA, "desirable_checklist")
    assert "swimming_pool" in str(exc_info.value)


def test_validate_checklist_non_boolean():
    """Test answers must be booleans"""
    answers = {name: True for name in MANDATORY_CRITERIA}
    answers["cctv_cameras"] = "yes"

    with pytest.raises(ValidationError):
        validate_checklist(answers, MANDATORY_CRITERIA, "mandatory_checklist")


def test_compute_compliance():
    """Test percentages round half up and failed mandatory items are listed"""
    mandatory = {name: True for name in MANDATORY_CRITERIA}
    mandatory["fire_equipment"] = False
    desirable = {name: i < 9 for i, name in enumerate(DESIRABLE_CRITERIA)}

    summary = compute_compliance(mandatory, desirable)

    assert summary.mandatory_percentage == 94  # 17/18
    assert summary.desirable_percentage == 50
    assert summary.overall_percentage == 72  # 26/36
    assert summary.failed_mandatory == ["fire_equipment"]


def test_scrutiny_progress():
    """Test progress counts every non-pending document as decided"""
    assert scrutiny_progress([]) == 0.0
    assert scrutiny_progress(["verified", "pending", "rejected", "needs_correction"]) == 0.75


def test_unresolved_documents():
    """Test anything other than verified is carried forward"""
    statuses = {"a": "verified", "b": "needs_correction", "c": "pending"}
    assert unresolved_documents(statuses) == ["b", "c"]
