"""Approval workflow module.

Implements sequential approval chains: policy resolution through the
workspace hierarchy, the request state machine, and eligibility checks.
"""

from .states import (
    ApprovalState,
    ApprovalTransition,
    DecisionOutcome,
    ResourceCategory,
    VALID_TRANSITIONS,
    TERMINAL_STATES,
)
from .policy import (
    ApprovalLevel,
    PolicyCriteria,
    PolicyStore,
    ResolvedPolicy,
    SubjectAttributes,
    TaskPriority,
    policy_applies,
    validate_chain,
)
from .eligibility import can_approve, ineligibility_reason, is_self_approval
from .machine import ApprovalStateMachine
from .service import ApprovalService

__all__ = [
    "ApprovalState",
    "ApprovalTransition",
    "DecisionOutcome",
    "ResourceCategory",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "ApprovalLevel",
    "PolicyStore",
    "ResolvedPolicy",
    "PolicyCriteria",
    "SubjectAttributes",
    "TaskPriority",
    "policy_applies",
    "validate_chain",
    "can_approve",
    "ineligibility_reason",
    "is_self_approval",
    "ApprovalStateMachine",
    "ApprovalService",
]
