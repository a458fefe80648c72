"""Delegation service for certificate capabilities.

An ancestor workspace hands a bundle of certificate capabilities down to one
of its descendants. There is at most one grant per (root, delegated) pair:
granting again replaces the bundle on the existing grant.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import UUID
import logging
import uuid

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from governance.core.config import get_settings
from governance.core.errors import (
    EmptyPermissionSetError,
    InvalidPermissionsError,
    InvalidTargetError,
    NotFoundError,
    UnauthorizedError,
)
from governance.core.hierarchy import WorkspaceHierarchy, WorkspaceType
from governance.core.logger import log_context
from governance.core.rbac import CapabilityChecker, WorkspaceCapabilityChecker
from governance.services.notifications import NotificationDispatcher, NotificationEventType, dispatch
from .permissions import CAPABILITY_FIELDS, DelegationCapability, DelegationPermissions, parse_capability

logger = logging.getLogger(__name__)

PermissionsLike = Union[DelegationPermissions, Mapping[str, bool]]


class DelegationService:
    """
    Manages delegation grants between workspaces.

    Handles:
    - Granting, re-granting and revoking capabilities
    - Listing grants given by a root workspace
    - Offering descendants that can still receive a grant
    - Answering capability checks for the certificate module
    """

    def __init__(
        self,
        db: Session,
        *,
        capabilities: Optional[CapabilityChecker] = None,
        notifier: Optional[NotificationDispatcher] = None,
        target_types: Optional[List[str]] = None,
    ):
        """
        Initialize the delegation service.

        Args:
            db: Database session
            capabilities: Admin-capability checker; defaults to workspace membership
            notifier: Optional observer for grant changes
            target_types: Workspace types offered as delegation targets.
                Defaults to ``Settings.delegation_target_types``.
        """
        self.db = db
        self.capabilities = capabilities or WorkspaceCapabilityChecker(db)
        self.notifier = notifier
        types = target_types if target_types is not None else get_settings().delegation_target_types_list
        self.target_types = {WorkspaceType(t) for t in types}

    def create_delegation(
        self,
        root_workspace_id: UUID,
        delegated_workspace_id: UUID,
        permissions: PermissionsLike,
        notes: Optional[str] = None,
        *,
        actor_id: UUID,
    ) -> Dict[str, Any]:
        """
        Grant capabilities to a descendant workspace, or replace an existing grant.

        Returns:
            Dictionary with the grant; ``created`` tells a new grant from a re-grant

        Raises:
            NotFoundError: If either workspace is unknown
            InvalidTargetError: If the target is not strictly below the root
            InvalidPermissionsError: If the permission set has unknown keys
            EmptyPermissionSetError: If no capability is granted
            UnauthorizedError: If the actor does not administer the root
        """
        from governance.db.models import DelegationGrant, Workspace

        hierarchy = WorkspaceHierarchy.for_workspace(self.db, root_workspace_id)
        if not self.db.query(Workspace).filter(Workspace.id == delegated_workspace_id).first():
            raise NotFoundError("workspace", delegated_workspace_id)
        if delegated_workspace_id not in hierarchy or not hierarchy.is_ancestor(
            root_workspace_id, delegated_workspace_id, reflexive=False
        ):
            raise InvalidTargetError(root_workspace_id, delegated_workspace_id)

        perms = self._coerce_permissions(permissions)
        if not self.capabilities.is_workspace_admin(actor_id, root_workspace_id):
            raise UnauthorizedError(actor_id, root_workspace_id, "delegate certificate capabilities")

        grant = self._find_pair(root_workspace_id, delegated_workspace_id)
        created = grant is None
        if created:
            try:
                with self.db.begin_nested():
                    grant = DelegationGrant(
                        id=uuid.uuid4(),
                        root_workspace_id=root_workspace_id,
                        delegated_workspace_id=delegated_workspace_id,
                        delegated_by=actor_id,
                        delegated_at=datetime.utcnow(),
                    )
                    self._apply(grant, perms, notes)
                    self.db.add(grant)
                    self.db.flush()
            except IntegrityError:
                # A concurrent grant for the same pair landed first; update it instead
                grant = self._find_pair(root_workspace_id, delegated_workspace_id)
                if grant is None:
                    raise
                created = False

        if not created:
            self._apply(grant, perms, notes)
            grant.delegated_by = actor_id
            grant.updated_at = datetime.utcnow()
            self.db.flush()

        logger.info(
            "Delegation %s %s: %s -> %s [%s]",
            grant.id, "created" if created else "replaced",
            root_workspace_id, delegated_workspace_id,
            ",".join(sorted(c.value for c in perms.granted)),
            extra=log_context(root_workspace_id),
        )
        result = self._grant_to_dict(grant)
        result["created"] = created
        event = NotificationEventType.DELEGATION_CREATED if created else NotificationEventType.DELEGATION_UPDATED
        dispatch(self.notifier, event, result)
        return result

    def update_delegation(
        self,
        delegation_id: UUID,
        permissions: PermissionsLike,
        notes: Optional[str] = None,
        *,
        actor_id: UUID,
    ) -> Dict[str, Any]:
        """
        Replace the capabilities and notes of a grant.

        As with a re-grant, the actor becomes the grant's ``delegated_by``.

        Raises:
            NotFoundError: If the grant is unknown
            InvalidPermissionsError: If the permission set has unknown keys
            EmptyPermissionSetError: If no capability is granted
            UnauthorizedError: If the actor does not administer the root
        """
        grant = self._load(delegation_id)
        perms = self._coerce_permissions(permissions)
        if not self.capabilities.is_workspace_admin(actor_id, grant.root_workspace_id):
            raise UnauthorizedError(actor_id, grant.root_workspace_id, "update delegations")

        self._apply(grant, perms, notes)
        grant.delegated_by = actor_id
        grant.updated_at = datetime.utcnow()
        self.db.flush()

        logger.info(
            "Delegation %s updated by %s", delegation_id, actor_id,
            extra=log_context(grant.root_workspace_id),
        )
        result = self._grant_to_dict(grant)
        dispatch(self.notifier, NotificationEventType.DELEGATION_UPDATED, result)
        return result

    def revoke_delegation(self, delegation_id: UUID, *, actor_id: UUID) -> Dict[str, Any]:
        """
        Delete a grant outright.

        Returns:
            The grant as it was before deletion

        Raises:
            NotFoundError: If the grant is unknown
            UnauthorizedError: If the actor does not administer the root
        """
        grant = self._load(delegation_id)
        if not self.capabilities.is_workspace_admin(actor_id, grant.root_workspace_id):
            raise UnauthorizedError(actor_id, grant.root_workspace_id, "revoke delegations")

        result = self._grant_to_dict(grant)
        self.db.delete(grant)
        self.db.flush()

        logger.info(
            "Delegation %s revoked by %s", delegation_id, actor_id,
            extra=log_context(result["root_workspace_id"]),
        )
        dispatch(self.notifier, NotificationEventType.DELEGATION_REVOKED, result)
        return result

    def get_delegation(self, delegation_id: UUID) -> Dict[str, Any]:
        return self._grant_to_dict(self._load(delegation_id))

    def list_delegations(self, root_workspace_id: UUID) -> List[Dict[str, Any]]:
        """Grants given by a root workspace, most recent first."""
        from governance.db.models import DelegationGrant

        grants = self.db.query(DelegationGrant).filter(
            DelegationGrant.root_workspace_id == root_workspace_id
        ).order_by(DelegationGrant.delegated_at.desc()).all()
        return [self._grant_to_dict(g) for g in grants]

    def delegations_received(self, workspace_id: UUID) -> List[Dict[str, Any]]:
        """Grants a workspace holds from its ancestors."""
        from governance.db.models import DelegationGrant

        grants = self.db.query(DelegationGrant).filter(
            DelegationGrant.delegated_workspace_id == workspace_id
        ).order_by(DelegationGrant.delegated_at.desc()).all()
        return [self._grant_to_dict(g) for g in grants]

    def eligible_delegation_targets(self, root_workspace_id: UUID, event_id: UUID) -> List[Dict[str, Any]]:
        """
        Descendants of the root that can still receive a grant.

        Only workspaces of the configured target types (departments and
        committees by default) are offered, and those already holding a grant
        from this root are left out.

        Returns:
            List of ``{"id", "name", "level"}`` ordered shallowest first, then by name
        """
        from governance.db.models import DelegationGrant

        hierarchy = WorkspaceHierarchy.for_event(self.db, event_id)
        descendants = hierarchy.descendants_of(root_workspace_id)

        already = {
            row.delegated_workspace_id
            for row in self.db.query(DelegationGrant.delegated_workspace_id).filter(
                DelegationGrant.root_workspace_id == root_workspace_id
            )
        }

        targets = []
        for workspace_id in descendants:
            node = hierarchy.get(workspace_id)
            if node.workspace_type not in self.target_types or workspace_id in already:
                continue
            depth = hierarchy.depth_of(workspace_id)
            targets.append((depth, node))

        targets.sort(key=lambda item: (item[0], item[1].name))
        return [
            {
                "id": str(node.id),
                "name": node.name,
                "level": f"L{depth + 1} - {node.workspace_type.value.title()}",
            }
            for depth, node in targets
        ]

    def has_capability(
        self,
        workspace_id: UUID,
        capability: Union[DelegationCapability, str],
    ) -> bool:
        """Whether any ancestor has granted ``capability`` to the workspace."""
        from governance.db.models import DelegationGrant

        field_name = CAPABILITY_FIELDS[parse_capability(capability)]
        hierarchy = WorkspaceHierarchy.for_workspace(self.db, workspace_id)
        ancestors = hierarchy.ancestors_of(workspace_id)
        if not ancestors:
            return False

        grant = self.db.query(DelegationGrant).filter(
            and_(
                DelegationGrant.delegated_workspace_id == workspace_id,
                DelegationGrant.root_workspace_id.in_(ancestors),
                getattr(DelegationGrant, field_name).is_(True),
            )
        ).first()
        return grant is not None

    def _coerce_permissions(self, permissions: PermissionsLike) -> DelegationPermissions:
        if not isinstance(permissions, DelegationPermissions):
            try:
                permissions = DelegationPermissions.model_validate(dict(permissions))
            except ValidationError as e:
                raise InvalidPermissionsError(f"Invalid permission set {dict(permissions)!r}: {e}") from e
        if not permissions.any_granted():
            raise EmptyPermissionSetError()
        return permissions

    def _apply(self, grant, permissions: DelegationPermissions, notes: Optional[str]) -> None:
        # Replace semantics: every flag is written, not merged
        for name in CAPABILITY_FIELDS.values():
            setattr(grant, name, getattr(permissions, name))
        grant.notes = notes

    def _find_pair(self, root_workspace_id: UUID, delegated_workspace_id: UUID):
        from governance.db.models import DelegationGrant

        return self.db.query(DelegationGrant).filter(
            and_(
                DelegationGrant.root_workspace_id == root_workspace_id,
                DelegationGrant.delegated_workspace_id == delegated_workspace_id,
            )
        ).first()

    def _load(self, delegation_id: UUID):
        from governance.db.models import DelegationGrant

        grant = self.db.query(DelegationGrant).filter(DelegationGrant.id == delegation_id).first()
        if not grant:
            raise NotFoundError("delegation", delegation_id)
        return grant

    def _grant_to_dict(self, grant) -> Dict[str, Any]:
        """Convert a DelegationGrant model to dictionary."""
        return {
            "id": str(grant.id),
            "root_workspace_id": str(grant.root_workspace_id),
            "delegated_workspace_id": str(grant.delegated_workspace_id),
            "resource_category": grant.resource_category,
            "permissions": DelegationPermissions.from_grant(grant).model_dump(),
            "notes": grant.notes,
            "delegated_by": str(grant.delegated_by) if grant.delegated_by else None,
            "delegated_at": grant.delegated_at.isoformat() if grant.delegated_at else None,
            "updated_at": grant.updated_at.isoformat() if grant.updated_at else None,
        }
