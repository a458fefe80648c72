"""Database models for the governance core."""

from governance.db.models.workspace import Workspace, WorkspaceMember
from governance.db.models.policy import ApprovalPolicy
from governance.db.models.approval import ApprovalRequest, ApprovalDecision
from governance.db.models.delegation import DelegationGrant

__all__ = [
    "Workspace",
    "WorkspaceMember",
    "ApprovalPolicy",
    "ApprovalRequest",
    "ApprovalDecision",
    "DelegationGrant",
]
