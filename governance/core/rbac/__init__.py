"""Role model and capability checks for workspace governance."""

from .roles import (
    WorkspaceRole,
    RoleComparator,
    ROLE_RANK,
    parse_role,
    exact_role_match,
    hierarchical_role_match,
    rank_comparator,
)
from .checker import CapabilityChecker, WorkspaceCapabilityChecker

__all__ = [
    "WorkspaceRole",
    "RoleComparator",
    "ROLE_RANK",
    "parse_role",
    "exact_role_match",
    "hierarchical_role_match",
    "rank_comparator",
    "CapabilityChecker",
    "WorkspaceCapabilityChecker",
]
