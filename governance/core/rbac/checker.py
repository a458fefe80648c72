"""Workspace capability checks.

Answers "may this actor administer this workspace", which gates policy
authoring, cancellation by non-requesters and delegation management.
"""

from typing import Iterable, Optional, Protocol
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from governance.core.config import get_settings
from governance.core.rbac.roles import WorkspaceRole, parse_role


class CapabilityChecker(Protocol):
    """Anything that can tell whether a user administers a workspace."""

    def is_workspace_admin(self, user_id: UUID, workspace_id: UUID) -> bool:
        ...


class WorkspaceCapabilityChecker:
    """Checks admin capability against the ``workspace_members`` table."""

    def __init__(self, db: Session, admin_roles: Optional[Iterable[str]] = None):
        """
        Args:
            db: Database session
            admin_roles: Role values that carry admin capability.
                Defaults to ``Settings.admin_roles``.
        """
        self.db = db
        roles = admin_roles if admin_roles is not None else get_settings().admin_roles_list
        self.admin_roles = {parse_role(r) for r in roles}

    def role_in(self, user_id: UUID, workspace_id: UUID) -> Optional[WorkspaceRole]:
        """Return the user's role in the workspace, or None if not a member."""
        from governance.db.models import WorkspaceMember

        member = self.db.query(WorkspaceMember).filter(
            and_(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        ).first()
        if not member:
            return None
        try:
            return parse_role(member.role)
        except ValueError:
            return None

    def is_workspace_admin(self, user_id: UUID, workspace_id: UUID) -> bool:
        role = self.role_in(user_id, workspace_id)
        return role is not None and role in self.admin_roles
