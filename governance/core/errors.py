"""Error taxonomy for the governance core.

Every failure is raised synchronously to the caller. None of these represent
transient faults, so nothing here is retried.
"""

from typing import Optional
from uuid import UUID


class GovernanceError(Exception):
    """Base class for all governance errors."""


class NotFoundError(GovernanceError):
    """Raised for an unknown workspace, request, policy or delegation id."""

    def __init__(self, kind: str, entity_id):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class InvalidStateError(GovernanceError):
    """Raised when a request is not in the state the action expects.

    Covers terminal requests as well as out-of-order level submission.
    """

    def __init__(self, message: str, status: Optional[str] = None, current_level: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.current_level = current_level


class NotEligibleError(GovernanceError):
    """Raised when a user may not decide the request at its current level."""

    def __init__(self, reason: str, user_id: Optional[UUID] = None):
        super().__init__(f"User {user_id} is not eligible to decide: {reason}")
        self.reason = reason
        self.user_id = user_id


class DuplicateDecisionError(GovernanceError):
    """Raised when a decision already exists for (request, level)."""

    def __init__(self, request_id, level: int):
        super().__init__(f"Level {level} of request {request_id} already has a decision")
        self.request_id = request_id
        self.level = level


class InvalidTargetError(GovernanceError):
    """Raised when a delegation target is not a strict descendant of the grantor."""

    def __init__(self, root_workspace_id, delegated_workspace_id):
        super().__init__(
            f"Workspace {delegated_workspace_id} is not a descendant of {root_workspace_id}"
        )
        self.root_workspace_id = root_workspace_id
        self.delegated_workspace_id = delegated_workspace_id


class EmptyPermissionSetError(GovernanceError):
    """Raised when a delegation grants no permission at all."""

    def __init__(self):
        super().__init__("At least one delegation permission must be granted")


class UnauthorizedError(GovernanceError):
    """Raised when the actor lacks admin capability on the workspace."""

    def __init__(self, actor_id, workspace_id, action: str):
        super().__init__(f"User {actor_id} may not {action} on workspace {workspace_id}")
        self.actor_id = actor_id
        self.workspace_id = workspace_id
        self.action = action


class NotConfiguredError(GovernanceError):
    """No approval policy applies anywhere up the ancestor chain.

    This is a signal, not a failure: producers treat the action as
    auto-approved.
    """

    def __init__(self, workspace_id, resource_category: str):
        super().__init__(
            f"No {resource_category} approval policy configured for workspace {workspace_id}"
        )
        self.workspace_id = workspace_id
        self.resource_category = resource_category


class InvalidPolicyError(GovernanceError, ValueError):
    """Raised when an approval chain fails validation."""


class HierarchyError(GovernanceError):
    """Raised when the workspace graph violates its tree invariants."""


class InvalidPermissionsError(GovernanceError, ValueError):
    """Raised when a delegation permission set carries unknown or malformed keys."""
