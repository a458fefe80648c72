import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from governance.db.base import Base


class DelegationGrant(Base):
    """
    Capabilities an ancestor workspace hands down to one of its descendants.

    At most one grant exists per (root, delegated) pair; re-granting updates it.
    """
    __tablename__ = "delegation_grants"
    __table_args__ = (
        UniqueConstraint("root_workspace_id", "delegated_workspace_id", name="uq_delegation_grants_pair"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    root_workspace_id = Column(Uuid(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    delegated_workspace_id = Column(Uuid(as_uuid=True), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    resource_category = Column(String(50), nullable=False, default="certificates")

    # Permissions
    can_design_templates = Column(Boolean, nullable=False, default=False)
    can_define_criteria = Column(Boolean, nullable=False, default=False)
    can_generate = Column(Boolean, nullable=False, default=False)
    can_distribute = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)
    delegated_by = Column(Uuid(as_uuid=True), nullable=False)
    delegated_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    root_workspace = relationship("Workspace", foreign_keys=[root_workspace_id])
    delegated_workspace = relationship("Workspace", foreign_keys=[delegated_workspace_id])

    def __repr__(self) -> str:
        return f"<DelegationGrant {self.root_workspace_id} -> {self.delegated_workspace_id}>"
