"""Approval request states and transitions.

State Machine Diagram:

    ┌──────────────────┐  escalate (approve, more levels remain)
    │ PENDING(level=k) │◄─────────┐
    └────────┬─────────┘──────────┘
             │
     ┌───────┼──────────────┐
     │       │              │
 approve   reject        cancel
(last or     │              │
deadline)    │              │
     │       │              │
┌────▼────┐ ┌▼─────────┐ ┌──▼────────┐
│APPROVED │ │ REJECTED │ │ CANCELLED │
└─────────┘ └──────────┘ └───────────┘

Escalation keeps the request PENDING and moves it to the next level; it is
not a separate stored state.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class ApprovalState(str, Enum):
    """States of an approval request."""

    PENDING = "pending"          # Awaiting a decision at current_level

    # Terminal states
    APPROVED = "approved"        # Every level approved
    REJECTED = "rejected"        # Some level rejected
    CANCELLED = "cancelled"      # Withdrawn before resolution


class DecisionOutcome(str, Enum):
    """Verdict an approver records on one level."""

    APPROVED = "approved"
    REJECTED = "rejected"


class ResourceCategory(str, Enum):
    """Kinds of action that can be gated by an approval chain."""

    TASK = "task"                # Task completion
    BUDGET = "budget"            # Budget increase
    RESOURCE = "resource"        # Resource allocation
    ACCESS = "access"            # Access grants


class ApprovalTransition(str, Enum):
    """Actions that move a request between states."""

    ESCALATE = "escalate"        # PENDING(k) → PENDING(k+1)
    APPROVE = "approve"          # PENDING(last) → APPROVED
    REJECT = "reject"            # PENDING → REJECTED
    CANCEL = "cancel"            # PENDING → CANCELLED
    AUTO_APPROVE = "auto_approve"  # PENDING → APPROVED once the policy deadline passes


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: ApprovalState
    to_state: ApprovalState
    transition: ApprovalTransition


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalState.PENDING, ApprovalState.PENDING, ApprovalTransition.ESCALATE),
    TransitionRule(ApprovalState.PENDING, ApprovalState.APPROVED, ApprovalTransition.APPROVE),
    TransitionRule(ApprovalState.PENDING, ApprovalState.REJECTED, ApprovalTransition.REJECT),
    TransitionRule(ApprovalState.PENDING, ApprovalState.CANCELLED, ApprovalTransition.CANCEL),
    TransitionRule(ApprovalState.PENDING, ApprovalState.APPROVED, ApprovalTransition.AUTO_APPROVE),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[ApprovalState, Set[ApprovalTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalState, ApprovalTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    if rule.from_state not in VALID_TRANSITIONS:
        VALID_TRANSITIONS[rule.from_state] = set()
    VALID_TRANSITIONS[rule.from_state].add(rule.transition)

    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule


# No outgoing transitions, no further decisions
TERMINAL_STATES: Set[ApprovalState] = {
    ApprovalState.APPROVED,
    ApprovalState.REJECTED,
    ApprovalState.CANCELLED,
}


def can_transition(from_state: ApprovalState, transition: ApprovalTransition) -> bool:
    """Check if a transition is valid from the given state."""
    valid = VALID_TRANSITIONS.get(from_state, set())
    return transition in valid


def get_transition_rule(from_state: ApprovalState, transition: ApprovalTransition) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, transition))


def get_target_state(from_state: ApprovalState, transition: ApprovalTransition) -> Optional[ApprovalState]:
    """Get the target state for a transition."""
    rule = get_transition_rule(from_state, transition)
    return rule.to_state if rule else None
