"""Approval policy store.

A policy is the ordered approval chain a workspace requires for one resource
category. Workspaces without a policy of their own inherit the nearest
ancestor's. When nothing is configured anywhere up the tree the action is not
gated at all: producers treat it as auto-approved.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import and_
from sqlalchemy.orm import Session

from governance.core.errors import InvalidPolicyError, NotConfiguredError, NotFoundError, UnauthorizedError
from governance.core.hierarchy import WorkspaceHierarchy
from governance.core.logger import log_context
from governance.core.rbac import CapabilityChecker, WorkspaceCapabilityChecker, WorkspaceRole, parse_role
from governance.core.approval.states import ResourceCategory

logger = logging.getLogger(__name__)


class ApprovalLevel(BaseModel):
    """One required sign-off in an approval chain."""
    model_config = ConfigDict(frozen=True)

    level: int = Field(..., ge=1, description="1-based position in the chain")
    required_role: WorkspaceRole
    description: Optional[str] = None

    @field_validator("required_role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        return parse_role(value)


LevelLike = Union[ApprovalLevel, Dict[str, Any]]


class TaskPriority(str, Enum):
    """Priority of the subject being gated."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PolicyCriteria(BaseModel):
    """
    Which subjects a non-default policy gates.

    Every criterion that is set must hold. Empty lists and a missing hour
    threshold impose nothing.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    categories: List[str] = Field(default_factory=list)
    priorities: List[TaskPriority] = Field(default_factory=list)
    min_estimated_hours: Optional[float] = Field(None, ge=0)

    @field_validator("categories")
    @classmethod
    def _normalise_categories(cls, value):
        return [str(c).strip().lower() for c in value if str(c).strip()]

    @field_validator("priorities", mode="before")
    @classmethod
    def _lower_priorities(cls, value):
        return [p.lower() if isinstance(p, str) else p for p in value or []]


class SubjectAttributes(BaseModel):
    """What the producer knows about the subject when it raises a request."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Optional[str] = None
    priority: Optional[TaskPriority] = None
    estimated_hours: Optional[float] = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def _lower_category(cls, value):
        return value.strip().lower() if value else None

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value):
        return value.lower() if isinstance(value, str) else value


SubjectLike = Union[SubjectAttributes, Dict[str, Any]]


def policy_applies(is_default: bool, criteria: Optional[PolicyCriteria], subject: Optional[SubjectAttributes]) -> bool:
    """
    Whether a policy gates the subject.

    A default policy gates everything. Otherwise every criterion that is set
    must be met; an attribute the producer did not supply never meets one.
    """
    if is_default:
        return True
    criteria = criteria or PolicyCriteria()
    subject = subject or SubjectAttributes()

    if criteria.categories and subject.category not in criteria.categories:
        return False
    if criteria.priorities and subject.priority not in criteria.priorities:
        return False
    if criteria.min_estimated_hours is not None:
        if subject.estimated_hours is None or subject.estimated_hours < criteria.min_estimated_hours:
            return False
    return True


def parse_subject(subject: Optional[SubjectLike]) -> Optional[SubjectAttributes]:
    if subject is None or isinstance(subject, SubjectAttributes):
        return subject
    try:
        return SubjectAttributes.model_validate(subject)
    except ValidationError as e:
        raise InvalidPolicyError(f"Invalid subject attributes {subject!r}: {e}") from e


def parse_criteria(criteria: Optional[Union[PolicyCriteria, Dict[str, Any]]]) -> PolicyCriteria:
    if criteria is None:
        return PolicyCriteria()
    if isinstance(criteria, PolicyCriteria):
        return criteria
    try:
        return PolicyCriteria.model_validate(criteria)
    except ValidationError as e:
        raise InvalidPolicyError(f"Invalid policy criteria {criteria!r}: {e}") from e


@dataclass
class ResolvedPolicy:
    """The policy that applies to a workspace after walking up the hierarchy."""
    policy_id: UUID
    workspace_id: UUID          # Workspace that defines the policy
    resource_category: ResourceCategory
    chain: List[ApprovalLevel] = field(default_factory=list)
    allow_self_approval: bool = False
    require_all_levels: bool = True
    auto_approve_after_hours: Optional[int] = None
    inherited: bool = False     # Defined on an ancestor, not the workspace itself

    @property
    def chain_length(self) -> int:
        return len(self.chain)


def parse_category(value: Union[ResourceCategory, str]) -> ResourceCategory:
    """Parse a resource category such as 'budget'."""
    try:
        return ResourceCategory(str(value.value if isinstance(value, ResourceCategory) else value).lower())
    except ValueError:
        raise InvalidPolicyError(f"Unknown resource category: {value}") from None


def validate_chain(levels: Iterable[LevelLike]) -> List[ApprovalLevel]:
    """
    Validate an approval chain.

    The chain must be non-empty and its level numbers must read 1, 2, ... N
    in the order given.

    Raises:
        InvalidPolicyError: For empty, duplicate, gapped or malformed levels
    """
    parsed: List[ApprovalLevel] = []
    for raw in levels:
        try:
            parsed.append(raw if isinstance(raw, ApprovalLevel) else ApprovalLevel.model_validate(raw))
        except (ValidationError, ValueError) as e:
            raise InvalidPolicyError(f"Invalid approval level {raw!r}: {e}") from e

    if not parsed:
        raise InvalidPolicyError("Approval chain must contain at least one level")

    numbers = [lvl.level for lvl in parsed]
    if len(set(numbers)) != len(numbers):
        raise InvalidPolicyError(f"Duplicate level numbers in approval chain: {numbers}")
    if numbers != list(range(1, len(numbers) + 1)):
        raise InvalidPolicyError(
            f"Approval levels must be contiguous and ascending from 1, got {numbers}"
        )
    return parsed


def chain_to_json(chain: Iterable[ApprovalLevel]) -> List[Dict[str, Any]]:
    return [lvl.model_dump(mode="json") for lvl in chain]


class PolicyStore:
    """
    Reads and authors approval policies.

    Handles:
    - Resolving the effective policy through the workspace hierarchy
    - Creating or replacing a workspace's policy for a category
    - Deactivating and deleting policies
    """

    def __init__(self, db: Session, *, capabilities: Optional[CapabilityChecker] = None):
        """
        Args:
            db: Database session
            capabilities: Admin-capability checker; defaults to workspace membership
        """
        self.db = db
        self.capabilities = capabilities or WorkspaceCapabilityChecker(db)

    def policy_for(
        self,
        workspace_id: UUID,
        resource_category: Union[ResourceCategory, str],
        subject: Optional[SubjectLike] = None,
    ) -> Optional[ResolvedPolicy]:
        """
        Resolve the nearest active policy that gates a subject.

        Walks from the workspace up to the root. A policy whose criteria the
        subject does not meet is skipped and the walk continues upwards.

        Args:
            workspace_id: Workspace the request is raised in
            resource_category: Category of the gated action
            subject: Attributes matched against non-default policies

        Returns:
            The resolved policy, or None when nothing up the chain gates the
            subject (the action is then auto-approved)

        Raises:
            NotFoundError: If the workspace is unknown
            InvalidPolicyError: If the subject attributes are malformed
        """
        from governance.db.models import ApprovalPolicy

        category = parse_category(resource_category)
        attributes = parse_subject(subject)
        hierarchy = WorkspaceHierarchy.for_workspace(self.db, workspace_id)
        candidates = [workspace_id] + hierarchy.ancestors_of(workspace_id)

        policies = self.db.query(ApprovalPolicy).filter(
            and_(
                ApprovalPolicy.workspace_id.in_(candidates),
                ApprovalPolicy.resource_category == category.value,
                ApprovalPolicy.is_active.is_(True),
            )
        ).all()
        by_workspace = {p.workspace_id: p for p in policies}

        for candidate in candidates:
            policy = by_workspace.get(candidate)
            if policy is None:
                continue
            is_default = policy.is_default is not False
            if not policy_applies(is_default, parse_criteria(policy.criteria), attributes):
                logger.debug("Policy %s does not gate %s; looking further up", policy.id, attributes)
                continue
            return ResolvedPolicy(
                policy_id=policy.id,
                workspace_id=policy.workspace_id,
                resource_category=category,
                chain=validate_chain(policy.approval_chain),
                allow_self_approval=bool(policy.allow_self_approval),
                require_all_levels=policy.require_all_levels is not False,
                auto_approve_after_hours=policy.auto_approve_after_hours,
                inherited=candidate != workspace_id,
            )

        logger.debug("No %s policy for workspace %s or its ancestors", category.value, workspace_id)
        return None

    def require_policy(
        self,
        workspace_id: UUID,
        resource_category: Union[ResourceCategory, str],
        subject: Optional[SubjectLike] = None,
    ) -> ResolvedPolicy:
        """Like :meth:`policy_for` but raises ``NotConfiguredError`` instead of returning None."""
        policy = self.policy_for(workspace_id, resource_category, subject)
        if policy is None:
            raise NotConfiguredError(workspace_id, parse_category(resource_category).value)
        return policy

    def define_policy(
        self,
        workspace_id: UUID,
        resource_category: Union[ResourceCategory, str],
        chain: Iterable[LevelLike],
        *,
        actor_id: UUID,
        allow_self_approval: bool = False,
        require_all_levels: bool = True,
        auto_approve_after_hours: Optional[int] = None,
        is_default: bool = True,
        criteria: Optional[Union[PolicyCriteria, Dict[str, Any]]] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create or replace the policy of a workspace for one category.

        Requests already in flight keep the chain and options they were
        created with.

        Args:
            require_all_levels: When False, an approval at any level resolves the request
            auto_approve_after_hours: Approve pending requests left untouched this long
            is_default: Gate every subject; when False only subjects meeting ``criteria``
            criteria: Categories, priorities and minimum estimated hours

        Raises:
            NotFoundError: If the workspace is unknown
            UnauthorizedError: If the actor does not administer the workspace
            InvalidPolicyError: If the chain, criteria or deadline fail validation
        """
        from governance.db.models import ApprovalPolicy, Workspace

        category = parse_category(resource_category)
        if not self.db.query(Workspace).filter(Workspace.id == workspace_id).first():
            raise NotFoundError("workspace", workspace_id)
        if not self.capabilities.is_workspace_admin(actor_id, workspace_id):
            raise UnauthorizedError(actor_id, workspace_id, "define approval policies")

        levels = validate_chain(chain)
        parsed_criteria = parse_criteria(criteria)
        if auto_approve_after_hours is not None and auto_approve_after_hours < 1:
            raise InvalidPolicyError(
                f"auto_approve_after_hours must be at least 1, got {auto_approve_after_hours}"
            )

        policy = self.db.query(ApprovalPolicy).filter(
            and_(
                ApprovalPolicy.workspace_id == workspace_id,
                ApprovalPolicy.resource_category == category.value,
            )
        ).first()

        if policy is None:
            policy = ApprovalPolicy(
                id=uuid.uuid4(),
                workspace_id=workspace_id,
                resource_category=category.value,
                created_by=actor_id,
            )
            self.db.add(policy)

        policy.name = name or f"{category.value.title()} approval"
        policy.description = description
        policy.approval_chain = chain_to_json(levels)
        policy.allow_self_approval = allow_self_approval
        policy.require_all_levels = require_all_levels
        policy.auto_approve_after_hours = auto_approve_after_hours
        policy.is_default = is_default
        policy.criteria = parsed_criteria.model_dump(mode="json")
        policy.is_active = True
        policy.updated_at = datetime.utcnow()

        self.db.flush()
        logger.info(
            "Policy %s defined (%s, %d levels, %s)",
            policy.id, category.value, len(levels), "default" if is_default else "criteria",
            extra=log_context(workspace_id),
        )
        return self._policy_to_dict(policy)

    def get_policy(self, policy_id: UUID) -> Dict[str, Any]:
        return self._policy_to_dict(self._load(policy_id))

    def list_policies(self, workspace_id: UUID) -> List[Dict[str, Any]]:
        """Policies defined directly on a workspace (not inherited ones)."""
        from governance.db.models import ApprovalPolicy

        policies = self.db.query(ApprovalPolicy).filter(
            ApprovalPolicy.workspace_id == workspace_id
        ).order_by(ApprovalPolicy.resource_category.asc()).all()
        return [self._policy_to_dict(p) for p in policies]

    def deactivate_policy(self, policy_id: UUID, *, actor_id: UUID) -> Dict[str, Any]:
        """Stop a policy from applying without deleting it."""
        policy = self._load(policy_id)
        if not self.capabilities.is_workspace_admin(actor_id, policy.workspace_id):
            raise UnauthorizedError(actor_id, policy.workspace_id, "deactivate approval policies")
        policy.is_active = False
        policy.updated_at = datetime.utcnow()
        self.db.flush()
        return self._policy_to_dict(policy)

    def delete_policy(self, policy_id: UUID, *, actor_id: UUID) -> None:
        policy = self._load(policy_id)
        if not self.capabilities.is_workspace_admin(actor_id, policy.workspace_id):
            raise UnauthorizedError(actor_id, policy.workspace_id, "delete approval policies")
        self.db.delete(policy)
        self.db.flush()
        logger.info("Policy %s deleted by %s", policy_id, actor_id, extra=log_context(policy.workspace_id))

    def _load(self, policy_id: UUID):
        from governance.db.models import ApprovalPolicy

        policy = self.db.query(ApprovalPolicy).filter(ApprovalPolicy.id == policy_id).first()
        if not policy:
            raise NotFoundError("policy", policy_id)
        return policy

    def _policy_to_dict(self, policy) -> Dict[str, Any]:
        """Convert an ApprovalPolicy model to dictionary."""
        return {
            "id": str(policy.id),
            "workspace_id": str(policy.workspace_id),
            "resource_category": policy.resource_category,
            "name": policy.name,
            "description": policy.description,
            "approval_chain": list(policy.approval_chain or []),
            "allow_self_approval": bool(policy.allow_self_approval),
            "require_all_levels": policy.require_all_levels is not False,
            "auto_approve_after_hours": policy.auto_approve_after_hours,
            "is_default": policy.is_default is not False,
            "criteria": dict(policy.criteria or {}),
            "is_active": bool(policy.is_active),
            "created_by": str(policy.created_by) if policy.created_by else None,
            "created_at": policy.created_at.isoformat() if policy.created_at else None,
            "updated_at": policy.updated_at.isoformat() if policy.updated_at else None,
        }
