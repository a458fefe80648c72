"""Approval service for managing approval requests.

Provides the high-level API producers and UIs use: creating requests against
the resolved policy, recording decisions, cancelling, and querying status.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Union
from uuid import UUID
import logging
import uuid

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from governance.core.errors import DuplicateDecisionError, NotFoundError
from governance.core.logger import log_context
from governance.core.rbac import CapabilityChecker, WorkspaceCapabilityChecker
from governance.core.rbac.roles import RoleComparator, RoleLike, exact_role_match
from governance.services.notifications import NotificationDispatcher, NotificationEventType, dispatch
from .eligibility import can_approve
from .machine import ApprovalStateMachine
from .policy import PolicyStore, SubjectLike, chain_to_json, parse_category, parse_subject
from .states import ApprovalState, ApprovalTransition, DecisionOutcome, ResourceCategory

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    High-level service for approval requests.

    Handles:
    - Creating requests with a snapshot of the applicable policy
    - Recording decisions atomically per (request, level)
    - Cancellation by requester or workspace admin
    - Querying status and actionable requests
    """

    def __init__(
        self,
        db: Session,
        *,
        role_satisfies: RoleComparator = exact_role_match,
        capabilities: Optional[CapabilityChecker] = None,
        notifier: Optional[NotificationDispatcher] = None,
        policy_store: Optional[PolicyStore] = None,
    ):
        """
        Initialize the approval service.

        Args:
            db: Database session
            role_satisfies: Comparator deciding whether a role meets a level's requirement
            capabilities: Admin-capability checker; defaults to workspace membership
            notifier: Optional observer for state transitions
            policy_store: Policy resolver; defaults to one on the same session
        """
        self.db = db
        self.role_satisfies = role_satisfies
        self.capabilities = capabilities or WorkspaceCapabilityChecker(db)
        self.notifier = notifier
        self.policies = policy_store or PolicyStore(db, capabilities=self.capabilities)

    def create_request(
        self,
        workspace_id: UUID,
        resource_category: Union[ResourceCategory, str],
        subject_ref: str,
        requester_id: UUID,
        *,
        subject: Optional[SubjectLike] = None,
        original_status: Optional[str] = None,
        target_status: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Open an approval request for an action that needs gated authorization.

        Args:
            workspace_id: Workspace the action happens in
            resource_category: Category of the gated action
            subject_ref: Producer's reference to the subject (task id, budget line...)
            requester_id: User asking for approval
            subject: Attributes used to pick among non-default policies
            original_status: Producer status of the subject before the request,
                handed back on cancellation so the producer can restore it
            target_status: Producer status to apply once the request is approved
            metadata: Free-form producer data stored with the request

        Returns:
            Dictionary with approval request details

        Raises:
            NotFoundError: If the workspace is unknown
            NotConfiguredError: If no policy applies; the caller should
                proceed as auto-approved
            InvalidPolicyError: If the subject attributes are malformed
        """
        from governance.db.models import ApprovalRequest

        category = parse_category(resource_category)
        attributes = parse_subject(subject)
        policy = self.policies.require_policy(workspace_id, category, attributes)

        requested_at = datetime.utcnow()
        auto_approve_at = None
        if policy.auto_approve_after_hours:
            auto_approve_at = requested_at + timedelta(hours=policy.auto_approve_after_hours)

        extra_data = dict(metadata or {})
        if attributes is not None:
            extra_data["subject"] = attributes.model_dump(mode="json", exclude_none=True)

        request = ApprovalRequest(
            id=uuid.uuid4(),
            workspace_id=workspace_id,
            policy_id=policy.policy_id,
            resource_category=category.value,
            subject_ref=str(subject_ref),
            requester_id=requester_id,
            requested_at=requested_at,
            status=ApprovalState.PENDING.value,
            current_level=1,
            approval_chain=chain_to_json(policy.chain),
            allow_self_approval=policy.allow_self_approval,
            require_all_levels=policy.require_all_levels,
            auto_approve_at=auto_approve_at,
            original_status=original_status,
            target_status=target_status,
            extra_data=extra_data,
        )
        self.db.add(request)
        self.db.flush()

        logger.info(
            "Approval request opened for %s:%s (%d levels)",
            category.value, subject_ref, policy.chain_length,
            extra=log_context(workspace_id, request.id),
        )
        result = self._request_to_dict(request)
        dispatch(self.notifier, NotificationEventType.REQUEST_CREATED, result)
        return result

    def get_request(self, request_id: UUID) -> Dict[str, Any]:
        """Get an approval request by ID."""
        return self._request_to_dict(self._load(request_id))

    def submit_decision(
        self,
        request_id: UUID,
        approver_id: UUID,
        approver_role: RoleLike,
        decision: Union[DecisionOutcome, str],
        notes: Optional[str] = None,
        *,
        level: int,
    ) -> Dict[str, Any]:
        """
        Record an approver's decision on the level they were shown.

        The decision row and the request's new status/level are written in
        one savepoint while the request row is locked.

        Args:
            request_id: ID of the approval request
            approver_id: User deciding
            approver_role: Role the user acts in
            decision: approved or rejected
            notes: Optional comment
            level: Level the approver is deciding. It must be the current
                level; resubmitting a level already decided is a duplicate.

        Returns:
            Updated approval request

        Raises:
            NotFoundError: If request not found
            InvalidStateError: If the request is terminal or ``level`` is out of order
            NotEligibleError: If the approver may not decide this level
            DuplicateDecisionError: If the level already holds a decision
        """
        from governance.db.models import ApprovalDecision

        request = self._load(request_id, lock=True)
        machine = ApprovalStateMachine.from_request(request, role_satisfies=self.role_satisfies)

        record = machine.submit(
            approver_id,
            approver_role,
            decision,
            level=level,
            notes=notes,
        )

        try:
            with self.db.begin_nested():
                request.decisions.append(ApprovalDecision(
                    id=record["id"],
                    level=record["level"],
                    approver_id=approver_id,
                    approver_role=record["approver_role"],
                    decision=record["decision"],
                    notes=notes,
                    decided_at=record["decided_at"],
                ))
                request.status = machine.state.value
                request.current_level = machine.current_level
                request.updated_at = record["decided_at"]
                if machine.is_terminal:
                    request.resolved_at = record["decided_at"]
                    request.resolved_by = approver_id
                self.db.flush()
        except IntegrityError:
            # Another approver won the race for this level
            raise DuplicateDecisionError(request_id, record["level"]) from None

        logger.info(
            "Level %d %s by %s -> %s",
            record["level"], record["decision"], approver_id, request.status,
            extra=log_context(request.workspace_id, request_id),
        )

        result = self._request_to_dict(request)
        payload = {"request": result, "decision": self._record_to_dict(record)}
        dispatch(self.notifier, NotificationEventType.DECISION_RECORDED, payload)
        if record["transition"] == ApprovalTransition.ESCALATE.value:
            dispatch(self.notifier, NotificationEventType.REQUEST_ESCALATED, payload)
        elif machine.is_terminal:
            dispatch(self.notifier, NotificationEventType.REQUEST_RESOLVED, payload)
        return result

    def cancel(
        self,
        request_id: UUID,
        by_user_id: UUID,
        *,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Cancel a pending request.

        Raises:
            NotFoundError: If request not found
            InvalidStateError: If the request is no longer pending
            UnauthorizedError: If the user is neither requester nor workspace admin
        """
        request = self._load(request_id, lock=True)
        machine = ApprovalStateMachine.from_request(request, role_satisfies=self.role_satisfies)

        is_admin = (
            str(by_user_id) != str(request.requester_id)
            and self.capabilities.is_workspace_admin(by_user_id, request.workspace_id)
        )
        record = machine.cancel(by_user_id, is_admin=is_admin, reason=reason)

        request.status = machine.state.value
        request.cancelled_by = by_user_id
        request.cancel_reason = reason
        request.resolved_at = record["timestamp"]
        request.updated_at = record["timestamp"]
        self.db.flush()

        logger.info("Cancelled by %s", by_user_id, extra=log_context(request.workspace_id, request_id))
        result = self._request_to_dict(request)
        dispatch(self.notifier, NotificationEventType.REQUEST_CANCELLED, result)
        return result

    def auto_approve_overdue(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Approve pending requests whose policy deadline has passed.

        Meant to be run periodically by the host. Each request is re-read under
        lock, so one resolved concurrently in the meantime is left alone.

        Args:
            now: Reference time; defaults to the current UTC time

        Returns:
            The requests approved by this sweep
        """
        from governance.db.models import ApprovalRequest

        now = now or datetime.utcnow()
        overdue_ids = [
            row.id
            for row in self.db.query(ApprovalRequest.id).filter(
                and_(
                    ApprovalRequest.status == ApprovalState.PENDING.value,
                    ApprovalRequest.auto_approve_at.isnot(None),
                    ApprovalRequest.auto_approve_at <= now,
                )
            ).order_by(ApprovalRequest.auto_approve_at.asc())
        ]

        approved = []
        for request_id in overdue_ids:
            request = self._load(request_id, lock=True)
            if request.status != ApprovalState.PENDING.value:
                continue
            machine = ApprovalStateMachine.from_request(request, role_satisfies=self.role_satisfies)
            record = machine.auto_approve(reason="approval deadline passed")

            request.status = machine.state.value
            request.resolved_at = record["timestamp"]
            request.updated_at = record["timestamp"]
            self.db.flush()

            logger.info(
                "Auto-approved at level %d after deadline %s",
                record["level"], request.auto_approve_at.isoformat(),
                extra=log_context(request.workspace_id, request_id),
            )
            result = self._request_to_dict(request)
            payload = {"request": result, "decision": self._record_to_dict(record)}
            dispatch(self.notifier, NotificationEventType.REQUEST_RESOLVED, payload)
            approved.append(result)
        return approved

    def can_approve(self, request_id: UUID, user_id: UUID, user_role: RoleLike) -> bool:
        """Whether the user may decide the request's current level right now."""
        request = self._load(request_id)
        return can_approve(request, user_id, user_role, role_satisfies=self.role_satisfies)

    def list_requests(
        self,
        workspace_id: UUID,
        *,
        status: Optional[Union[ApprovalState, str]] = None,
        resource_category: Optional[Union[ResourceCategory, str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Requests raised in a workspace, newest first."""
        from governance.db.models import ApprovalRequest

        query = self.db.query(ApprovalRequest).filter(ApprovalRequest.workspace_id == workspace_id)

        if status:
            query = query.filter(ApprovalRequest.status == ApprovalState(status).value)
        if resource_category:
            query = query.filter(ApprovalRequest.resource_category == parse_category(resource_category).value)

        query = query.order_by(ApprovalRequest.requested_at.desc())
        query = query.offset(offset).limit(limit)

        return [self._request_to_dict(r) for r in query.all()]

    def list_actionable(
        self,
        workspace_id: UUID,
        user_id: UUID,
        user_role: RoleLike,
    ) -> List[Dict[str, Any]]:
        """Pending requests in a workspace the user may decide now, oldest first."""
        from governance.db.models import ApprovalRequest

        pending = self.db.query(ApprovalRequest).filter(
            and_(
                ApprovalRequest.workspace_id == workspace_id,
                ApprovalRequest.status == ApprovalState.PENDING.value,
            )
        ).order_by(ApprovalRequest.requested_at.asc()).all()

        return [
            self._request_to_dict(r)
            for r in pending
            if can_approve(r, user_id, user_role, role_satisfies=self.role_satisfies)
        ]

    def is_subject_approved(
        self,
        resource_category: Union[ResourceCategory, str],
        subject_ref: str,
    ) -> bool:
        """Check if the subject has a fully approved request."""
        from governance.db.models import ApprovalRequest

        approved = self.db.query(ApprovalRequest).filter(
            and_(
                ApprovalRequest.resource_category == parse_category(resource_category).value,
                ApprovalRequest.subject_ref == str(subject_ref),
                ApprovalRequest.status == ApprovalState.APPROVED.value,
            )
        ).first()

        return approved is not None

    def _load(self, request_id: UUID, *, lock: bool = False):
        from governance.db.models import ApprovalRequest

        query = self.db.query(ApprovalRequest).filter(ApprovalRequest.id == request_id)
        if lock:
            query = query.with_for_update()
        request = query.first()
        if not request:
            raise NotFoundError("approval request", request_id)
        if lock:
            # Decisions written since this object was loaded must be visible
            self.db.expire(request, ["decisions"])
        return request

    def _record_to_dict(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: (str(value) if isinstance(value, UUID) else value.isoformat() if isinstance(value, datetime) else value)
            for key, value in record.items()
        }

    def _decision_to_dict(self, decision) -> Dict[str, Any]:
        return {
            "id": str(decision.id),
            "level": decision.level,
            "approver_id": str(decision.approver_id),
            "approver_role": decision.approver_role,
            "decision": decision.decision,
            "notes": decision.notes,
            "decided_at": decision.decided_at.isoformat() if decision.decided_at else None,
        }

    def _request_to_dict(self, request) -> Dict[str, Any]:
        """Convert an ApprovalRequest model to dictionary."""
        return {
            "id": str(request.id),
            "workspace_id": str(request.workspace_id),
            "policy_id": str(request.policy_id) if request.policy_id else None,
            "resource_category": request.resource_category,
            "subject_ref": request.subject_ref,
            "requester_id": str(request.requester_id),
            "requested_at": request.requested_at.isoformat() if request.requested_at else None,
            "status": request.status,
            "current_level": request.current_level,
            "total_levels": len(request.approval_chain or []),
            "approval_chain": list(request.approval_chain or []),
            "allow_self_approval": bool(request.allow_self_approval),
            "require_all_levels": request.require_all_levels is not False,
            "auto_approve_at": request.auto_approve_at.isoformat() if request.auto_approve_at else None,
            "original_status": request.original_status,
            "target_status": request.target_status,
            "decisions": [self._decision_to_dict(d) for d in request.decisions],
            "resolved_at": request.resolved_at.isoformat() if request.resolved_at else None,
            "resolved_by": str(request.resolved_by) if request.resolved_by else None,
            "cancelled_by": str(request.cancelled_by) if request.cancelled_by else None,
            "cancel_reason": request.cancel_reason,
            "extra_data": request.extra_data,
            "updated_at": request.updated_at.isoformat() if request.updated_at else None,
        }
