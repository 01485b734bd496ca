"""
Application status workflow - the transition table is the single source of
truth for which role may do what, from which status, and what it leads to.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from homestay_registry.domain.models import (
    Action,
    ApplicationStatus as S,
    RemarksRequirement,
    Role,
    TERMINAL_STATUSES,
    TransitionDecision,
    TransitionRule,
)
from homestay_registry.domain.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    ValidationError,
)


def _rule(action, sources, target, roles, remarks=RemarksRequirement.NONE) -> TransitionRule:
    return TransitionRule(
        action=action,
        sources=frozenset(sources),
        target=target,
        roles=frozenset(roles),
        remarks=remarks,
    )


OPTIONAL = RemarksRequirement.OPTIONAL
REQUIRED = RemarksRequirement.REQUIRED

OFFICER_ROLES = (Role.DEALING_ASSISTANT, Role.DTDO, Role.DISTRICT_OFFICER, Role.STATE_OFFICER)

# target=None marks a self-loop: the action is authorised but the status is kept
TRANSITIONS: Tuple[TransitionRule, ...] = (
    # Owner
    _rule(Action.UPDATE, [S.DRAFT, S.SENT_BACK_FOR_CORRECTIONS], None, [Role.OWNER]),
    _rule(Action.SUBMIT, [S.DRAFT, S.SENT_BACK_FOR_CORRECTIONS], S.SUBMITTED, [Role.OWNER]),
    # District officer variant
    _rule(Action.START_REVIEW, [S.SUBMITTED], S.DISTRICT_REVIEW, [Role.DISTRICT_OFFICER]),
    _rule(Action.ACCEPT, [S.SUBMITTED, S.DISTRICT_REVIEW], S.FORWARDED_TO_DTDO, [Role.DISTRICT_OFFICER], OPTIONAL),
    _rule(Action.APPROVE, [S.SUBMITTED, S.DISTRICT_REVIEW], S.FORWARDED_TO_DTDO, [Role.DISTRICT_OFFICER], OPTIONAL),
    _rule(Action.REJECT, [S.SUBMITTED, S.DISTRICT_REVIEW], S.REJECTED, [Role.DISTRICT_OFFICER], REQUIRED),
    _rule(Action.SEND_BACK, [S.DISTRICT_REVIEW], S.SENT_BACK_FOR_CORRECTIONS, [Role.DISTRICT_OFFICER], REQUIRED),
    # Dealing assistant scrutiny
    _rule(Action.START_SCRUTINY, [S.SUBMITTED], S.UNDER_SCRUTINY, [Role.DEALING_ASSISTANT]),
    _rule(Action.SAVE_SCRUTINY, [S.UNDER_SCRUTINY], None, [Role.DEALING_ASSISTANT], OPTIONAL),
    _rule(Action.FORWARD, [S.UNDER_SCRUTINY], S.FORWARDED_TO_DTDO, [Role.DEALING_ASSISTANT], OPTIONAL),
    _rule(Action.SEND_BACK, [S.UNDER_SCRUTINY], S.SENT_BACK_FOR_CORRECTIONS, [Role.DEALING_ASSISTANT], REQUIRED),
    # DTDO decision
    _rule(Action.BEGIN_REVIEW, [S.FORWARDED_TO_DTDO], S.DTDO_REVIEW, [Role.DTDO]),
    _rule(Action.ACCEPT, [S.FORWARDED_TO_DTDO, S.DTDO_REVIEW], S.INSPECTION_SCHEDULED, [Role.DTDO], REQUIRED),
    _rule(Action.REJECT, [S.FORWARDED_TO_DTDO, S.DTDO_REVIEW], S.REJECTED, [Role.DTDO], REQUIRED),
    _rule(Action.REVERT, [S.FORWARDED_TO_DTDO, S.DTDO_REVIEW], S.SENT_BACK_FOR_CORRECTIONS, [Role.DTDO], REQUIRED),
    # Inspection
    _rule(Action.SCHEDULE_INSPECTION, [S.INSPECTION_SCHEDULED, S.OBJECTION_RAISED], S.INSPECTION_SCHEDULED, [Role.DTDO], OPTIONAL),
    _rule(Action.SUBMIT_INSPECTION_REPORT, [S.INSPECTION_SCHEDULED], S.INSPECTION_COMPLETED, [Role.DEALING_ASSISTANT], OPTIONAL),
    _rule(Action.APPROVE, [S.INSPECTION_COMPLETED], S.PAYMENT_PENDING, [Role.DTDO], OPTIONAL),
    _rule(Action.APPROVE, [S.INSPECTION_COMPLETED], S.STATE_REVIEW, [Role.DISTRICT_OFFICER], OPTIONAL),
    _rule(Action.REJECT, [S.INSPECTION_COMPLETED], S.REJECTED, [Role.DTDO, Role.DISTRICT_OFFICER], REQUIRED),
    _rule(Action.RAISE_OBJECTIONS, [S.INSPECTION_COMPLETED], S.OBJECTION_RAISED, [Role.DTDO], REQUIRED),
    # State tier
    _rule(Action.APPROVE, [S.STATE_REVIEW], S.VERIFIED_FOR_PAYMENT, [Role.STATE_OFFICER], OPTIONAL),
    _rule(Action.REJECT, [S.STATE_REVIEW], S.REJECTED, [Role.STATE_OFFICER], REQUIRED),
    # Payment
    _rule(Action.INITIATE_PAYMENT, [S.PAYMENT_PENDING, S.VERIFIED_FOR_PAYMENT], None, [Role.OWNER]),
    _rule(
        Action.PAYMENT_VERIFIED,
        [S.PAYMENT_PENDING, S.VERIFIED_FOR_PAYMENT],
        S.APPROVED,
        [Role.SYSTEM, Role.DTDO, Role.DISTRICT_OFFICER, Role.STATE_OFFICER],
        OPTIONAL,
    ),
)

# Status names used by earlier dashboard iterations
LEGACY_STATUS_ALIASES: Dict[str, S] = {
    "pending": S.DISTRICT_REVIEW,
    "reverted_to_applicant": S.SENT_BACK_FOR_CORRECTIONS,
    "clarification_requested": S.SENT_BACK_FOR_CORRECTIONS,
}


def _index(rules: Iterable[TransitionRule]) -> Dict[Tuple[S, Action], List[TransitionRule]]:
    index: Dict[Tuple[S, Action], List[TransitionRule]] = {}
    for rule in rules:
        for source in rule.sources:
            index.setdefault((source, rule.action), []).append(rule)
    return index


_RULES_BY_EDGE = _index(TRANSITIONS)


def parse_status(value: str) -> S:
    """Parse a canonical or legacy status name"""
    if value in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[value]
    try:
        return S(value)
    except ValueError:
        raise ValidationError(f"Unknown application status '{value}'", field="status")


def can_transition(current_status, action, actor_role) -> TransitionDecision:
    """
    Decide whether actor_role may perform action while the application is in
    current_status. Pure: consults only the static table.
    """
    current = S(current_status)
    action = Action(action)
    role = Role(actor_role)

    if current in TERMINAL_STATUSES:
        return TransitionDecision(
            allowed=False,
            reason=f"Application is {current.value}; no further actions are possible",
        )

    rules = _RULES_BY_EDGE.get((current, action))
    if not rules:
        return TransitionDecision(
            allowed=False,
            reason=f"Action '{action.value}' is not valid while application is '{current.value}'",
        )

    for rule in rules:
        if role in rule.roles:
            return TransitionDecision(
                allowed=True,
                next_status=rule.resolve_target(current),
                rule=rule,
            )

    return TransitionDecision(
        allowed=False,
        reason=f"Role '{role.value}' may not '{action.value}' an application in '{current.value}'",
        denied_by_role=True,
    )


def require_transition(current_status, action, actor_role) -> TransitionDecision:
    """Like can_transition but raises the matching domain error when disallowed"""
    decision = can_transition(current_status, action, actor_role)
    if decision.allowed:
        return decision
    if decision.denied_by_role:
        raise AuthorizationError(decision.reason)
    raise InvalidTransitionError(decision.reason, current_status=S(current_status).value)


def validate_remarks(rule: TransitionRule, remarks: Optional[str]) -> Optional[str]:
    """Normalise remarks and enforce the rule's requirement"""
    cleaned = remarks.strip() if remarks else ""
    if rule.remarks == RemarksRequirement.REQUIRED and not cleaned:
        raise ValidationError(
            f"Remarks are required to {rule.action.value.replace('_', ' ')}",
            field="remarks",
        )
    return cleaned or None


def allowed_actions(current_status, actor_role) -> List[Action]:
    """Actions the role can take from the given status, for UI capability hints"""
    current = S(current_status)
    role = Role(actor_role)
    actions = []
    for (source, action), rules in _RULES_BY_EDGE.items():
        if source == current and any(role in r.roles for r in rules) and action not in actions:
            actions.append(action)
    return sorted(actions, key=lambda a: a.value)
