"""Approval workflow database models.

Stores approval requests and the per-level decisions recorded against them.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from governance.db.base import Base


class ApprovalRequest(Base):
    """
    A request moving through a sequential approval chain.

    The chain and the self-approval flag are copied from the policy when the
    request is created, so later policy edits never renumber its levels.
    """
    __tablename__ = "approval_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workspace_id = Column(Uuid(as_uuid=True), ForeignKey("workspaces.id"), nullable=False, index=True)
    policy_id = Column(Uuid(as_uuid=True), ForeignKey("approval_policies.id", ondelete="SET NULL"), nullable=True)

    # What is being approved
    resource_category = Column(String(20), nullable=False, index=True)
    subject_ref = Column(String(255), nullable=False, index=True)

    # Request tracking
    requester_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    requested_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    current_level = Column(Integer, nullable=False, default=1)

    # Policy snapshot
    approval_chain = Column(JSON, nullable=False, default=list)
    allow_self_approval = Column(Boolean, nullable=False, default=False)
    require_all_levels = Column(Boolean, nullable=False, default=True)
    auto_approve_at = Column(DateTime, nullable=True, index=True)

    # Producer state to restore on cancel and to apply on approval
    original_status = Column(String(50), nullable=True)
    target_status = Column(String(50), nullable=True)

    # Resolution tracking
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(Uuid(as_uuid=True), nullable=True)
    cancelled_by = Column(Uuid(as_uuid=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    extra_data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    workspace = relationship("Workspace")
    policy = relationship("ApprovalPolicy")
    decisions = relationship(
        "ApprovalDecision",
        back_populates="request",
        order_by="ApprovalDecision.level",
        cascade="all, delete-orphan",
    )

    @property
    def chain(self):
        from governance.core.approval.policy import ApprovalLevel

        return [ApprovalLevel.model_validate(level) for level in self.approval_chain or []]

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.resource_category}:{self.subject_ref} [{self.status}@{self.current_level}]>"


class ApprovalDecision(Base):
    """
    One approver's verdict on one level of a request.

    The unique (request_id, level) constraint is what serialises concurrent
    approvers at the same level.
    """
    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("request_id", "level", name="uq_approval_decisions_request_level"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(Integer, nullable=False)

    # Actor
    approver_id = Column(Uuid(as_uuid=True), nullable=False)
    approver_role = Column(String(50), nullable=False)

    decision = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    decided_at = Column(DateTime, default=datetime.utcnow)

    request = relationship("ApprovalRequest", back_populates="decisions")

    def __repr__(self) -> str:
        return f"<ApprovalDecision L{self.level} {self.decision}>"
