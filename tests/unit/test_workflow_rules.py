"""Unit tests for the application status transition table"""

import pytest
from homestay_registry.domain.exceptions import AuthorizationError, InvalidTransitionError, ValidationError
from homestay_registry.domain.models import Action, ApplicationStatus, Role
from homestay_registry.domain.workflow import (
    TRANSITIONS,
    allowed_actions,
    can_transition,
    parse_status,
    require_transition,
    validate_remarks,
)


def test_owner_submits_draft():
    """Test draft -> submitted for the owner"""
    decision = can_transition(ApplicationStatus.DRAFT, Action.SUBMIT, Role.OWNER)

    assert decision.allowed is True
    assert decision.next_status == ApplicationStatus.SUBMITTED


def test_resubmission_after_send_back():
    """Test sent-back applications can be submitted again"""
    decision = can_transition("sent_back_for_corrections", "submit", "owner")
    assert decision.next_status == ApplicationStatus.SUBMITTED


def test_dealing_assistant_path():
    """Test submitted -> under_scrutiny -> forwarded_to_dtdo"""
    scrutiny = can_transition(ApplicationStatus.SUBMITTED, Action.START_SCRUTINY, Role.DEALING_ASSISTANT)
    forward = can_transition(scrutiny.next_status, Action.FORWARD, Role.DEALING_ASSISTANT)

    assert scrutiny.next_status == ApplicationStatus.UNDER_SCRUTINY
    assert forward.next_status == ApplicationStatus.FORWARDED_TO_DTDO


def test_save_scrutiny_keeps_status():
    """Test self-loop actions resolve to the current status"""
    decision = can_transition(ApplicationStatus.UNDER_SCRUTINY, Action.SAVE_SCRUTINY, Role.DEALING_ASSISTANT)
    assert decision.next_status == ApplicationStatus.UNDER_SCRUTINY


def test_same_action_resolves_by_role():
    """Test approve after inspection goes to payment for the DTDO and to state review for the district officer"""
    dtdo = can_transition(ApplicationStatus.INSPECTION_COMPLETED, Action.APPROVE, Role.DTDO)
    district = can_transition(ApplicationStatus.INSPECTION_COMPLETED, Action.APPROVE, Role.DISTRICT_OFFICER)

    assert dtdo.next_status == ApplicationStatus.PAYMENT_PENDING
    assert district.next_status == ApplicationStatus.STATE_REVIEW


def test_wrong_role_is_denied_by_role():
    """Test an owner cannot forward; denial is flagged as a role problem"""
    decision = can_transition(ApplicationStatus.UNDER_SCRUTINY, Action.FORWARD, Role.OWNER)

    assert decision.allowed is False
    assert decision.denied_by_role is True


def test_unknown_edge_is_not_a_role_denial():
    """Test an action not valid in the status is an invalid transition"""
    decision = can_transition(ApplicationStatus.DRAFT, Action.FORWARD, Role.DEALING_ASSISTANT)

    assert decision.allowed is False
    assert decision.denied_by_role is False


@pytest.mark.parametrize("status", [ApplicationStatus.APPROVED, ApplicationStatus.REJECTED])
def test_terminal_statuses_allow_nothing(status):
    """Test no rule applies once an application is approved or rejected"""
    for action in Action:
        for role in Role:
            assert can_transition(status, action, role).allowed is False


def test_no_rule_leaves_a_terminal_status():
    """Test terminal statuses never appear as a source in the table"""
    for rule in TRANSITIONS:
        assert ApplicationStatus.APPROVED not in rule.sources
        assert ApplicationStatus.REJECTED not in rule.sources


def test_require_transition_raises_matching_errors():
    """Test role denial raises AuthorizationError and bad edges InvalidTransitionError"""
    with pytest.raises(AuthorizationError):
        require_transition(ApplicationStatus.SUBMITTED, Action.START_SCRUTINY, Role.OWNER)

    with pytest.raises(InvalidTransitionError) as exc_info:
        require_transition(ApplicationStatus.APPROVED, Action.REJECT, Role.DTDO)
    assert exc_info.value.current_status == "approved"


def test_rejection_requires_remarks():
    """Test blank remarks fail for rules that require them"""
    decision = can_transition(ApplicationStatus.DTDO_REVIEW, Action.REJECT, Role.DTDO)

    with pytest.raises(ValidationError) as exc_info:
        validate_remarks(decision.rule, "   ")
    assert exc_info.value.field == "remarks"
    assert validate_remarks(decision.rule, "  Fire safety missing ") == "Fire safety missing"


def test_optional_remarks_normalise_to_none():
    """Test empty optional remarks become None"""
    decision = can_transition(ApplicationStatus.UNDER_SCRUTINY, Action.FORWARD, Role.DEALING_ASSISTANT)
    assert validate_remarks(decision.rule, "") is None


def test_legacy_status_aliases():
    """Test old dashboard status names map onto canonical statuses"""
    assert parse_status("pending") == ApplicationStatus.DISTRICT_REVIEW
    assert parse_status("reverted_to_applicant") == ApplicationStatus.SENT_BACK_FOR_CORRECTIONS
    assert parse_status("clarification_requested") == ApplicationStatus.SENT_BACK_FOR_CORRECTIONS
    assert parse_status("approved") == ApplicationStatus.APPROVED

    with pytest.raises(ValidationError):
        parse_status("archived")


def test_allowed_actions_for_dtdo():
    """Test capability hints list every action the role has from a status"""
    actions = allowed_actions(ApplicationStatus.FORWARDED_TO_DTDO, Role.DTDO)
    assert actions == [Action.ACCEPT, Action.BEGIN_REVIEW, Action.REJECT, Action.REVERT]


def test_allowed_actions_empty_for_other_roles():
    """Test an owner has nothing to do while the DTDO reviews"""
    assert allowed_actions(ApplicationStatus.DTDO_REVIEW, Role.OWNER) == []
