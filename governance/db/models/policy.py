import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from governance.db.base import Base


class ApprovalPolicy(Base):
    """Ordered approval chain for one resource category in one workspace."""
    __tablename__ = "approval_policies"
    __table_args__ = (
        UniqueConstraint("workspace_id", "resource_category", name="uq_approval_policies_workspace_category"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workspace_id = Column(Uuid(as_uuid=True), ForeignKey("workspaces.id"), nullable=False, index=True)
    resource_category = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # [{"level": 1, "required_role": "team_lead", "description": "..."}, ...]
    approval_chain = Column(JSON, nullable=False, default=list)
    allow_self_approval = Column(Boolean, nullable=False, default=False)
    require_all_levels = Column(Boolean, nullable=False, default=True)
    auto_approve_after_hours = Column(Integer, nullable=True)

    # Which subjects the policy gates; a default policy gates every subject
    # {"categories": [...], "priorities": [...], "min_estimated_hours": 4}
    is_default = Column(Boolean, nullable=False, default=True)
    criteria = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    workspace = relationship("Workspace")

    def __repr__(self) -> str:
        return f"<ApprovalPolicy {self.resource_category} levels={len(self.approval_chain or [])}>"
