"""Workspace roles and role-satisfaction comparators.

Roles form a closed enumeration. Whether one role satisfies another is not
hardcoded: callers pick a comparator, because role sets and rankings vary by
resource category.

Default ranking, most to least authority:
1. Owner
2. Admin
3. Department Head
4. Committee Lead
5. Team Lead
6. Member
"""

from enum import Enum
from typing import Callable, Dict, Optional, Union


class WorkspaceRole(str, Enum):
    """Roles a user can hold inside a workspace."""

    OWNER = "owner"
    ADMIN = "admin"
    DEPARTMENT_HEAD = "department_head"
    COMMITTEE_LEAD = "committee_lead"
    TEAM_LEAD = "team_lead"
    MEMBER = "member"


RoleLike = Union[WorkspaceRole, str]

# (actual_role, required_role) -> satisfied?
RoleComparator = Callable[[RoleLike, RoleLike], bool]


# Higher value = more authority
ROLE_RANK: Dict[WorkspaceRole, int] = {
    WorkspaceRole.OWNER: 60,
    WorkspaceRole.ADMIN: 50,
    WorkspaceRole.DEPARTMENT_HEAD: 40,
    WorkspaceRole.COMMITTEE_LEAD: 30,
    WorkspaceRole.TEAM_LEAD: 20,
    WorkspaceRole.MEMBER: 10,
}


def parse_role(value: RoleLike) -> WorkspaceRole:
    """Parse a role string like 'team_lead' (case-insensitive)."""
    if isinstance(value, WorkspaceRole):
        return value
    try:
        return WorkspaceRole(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown workspace role: {value}") from None


def _coerce(value: Optional[RoleLike]) -> Optional[WorkspaceRole]:
    if value is None:
        return None
    try:
        return parse_role(value)
    except ValueError:
        return None


def exact_role_match(actual: RoleLike, required: RoleLike) -> bool:
    """Actual role must be exactly the required role."""
    actual_role = _coerce(actual)
    return actual_role is not None and actual_role == _coerce(required)


def rank_comparator(ranking: Dict[WorkspaceRole, int]) -> RoleComparator:
    """
    Build a comparator where a role satisfies every role ranked at or below it.

    Roles missing from ``ranking`` never satisfy anything.
    """
    def satisfies(actual: RoleLike, required: RoleLike) -> bool:
        actual_role = _coerce(actual)
        required_role = _coerce(required)
        if actual_role not in ranking or required_role not in ranking:
            return False
        return ranking[actual_role] >= ranking[required_role]

    return satisfies


# OWNER satisfies ADMIN-required levels, ADMIN satisfies DEPARTMENT_HEAD, ...
hierarchical_role_match: RoleComparator = rank_comparator(ROLE_RANK)
