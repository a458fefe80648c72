"""Who may decide a pending request at its current level.

Pure functions with no side effects, shared by the state machine and by UIs
so the authorization rule lives in one place. They accept any request-like
object exposing ``status``, ``current_level``, ``requester_id``,
``allow_self_approval`` and ``chain`` (a list of ``ApprovalLevel``); both the
``ApprovalRequest`` model and ``ApprovalStateMachine`` qualify.
"""

from typing import Optional

from governance.core.rbac.roles import RoleComparator, RoleLike, WorkspaceRole, exact_role_match
from governance.core.approval.states import ApprovalState

# Reasons returned by ineligibility_reason()
NOT_PENDING = "not_pending"
LEVEL_OUT_OF_RANGE = "no_level"
SELF_APPROVAL = "self_approval"
ROLE_MISMATCH = "role"


def required_role_for(request, level: Optional[int] = None) -> Optional[WorkspaceRole]:
    """Role required at ``level`` (defaults to the request's current level)."""
    level = request.current_level if level is None else level
    for step in request.chain:
        if step.level == level:
            return step.required_role
    return None


def is_self_approval(request, user_id) -> bool:
    """Whether ``user_id`` raised the request."""
    if user_id is None or request.requester_id is None:
        return False
    return str(user_id) == str(request.requester_id)


def ineligibility_reason(
    request,
    user_id,
    user_role: Optional[RoleLike],
    *,
    role_satisfies: RoleComparator = exact_role_match,
) -> Optional[str]:
    """
    Why the user may not decide the request right now, or None if they may.

    Lets a UI tell "you cannot approve your own request" apart from
    "this level needs a different role".
    """
    if ApprovalState(request.status) != ApprovalState.PENDING:
        return NOT_PENDING

    required = required_role_for(request)
    if required is None:
        return LEVEL_OUT_OF_RANGE

    if is_self_approval(request, user_id) and not request.allow_self_approval:
        return SELF_APPROVAL

    if user_role is None or not role_satisfies(user_role, required):
        return ROLE_MISMATCH

    return None


def can_approve(
    request,
    user_id,
    user_role: Optional[RoleLike],
    *,
    role_satisfies: RoleComparator = exact_role_match,
) -> bool:
    """True iff the user may record a decision at the request's current level."""
    return ineligibility_reason(request, user_id, user_role, role_satisfies=role_satisfies) is None
