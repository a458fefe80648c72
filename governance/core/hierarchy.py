"""Workspace hierarchy traversal.

An event's workspaces form a tree::

    ROOT
     ├── DEPARTMENT
     │    └── COMMITTEE
     │         └── TEAM
     └── TEAM            (degenerate trees may nest a team directly under root)

All queries are pure reads over the nodes handed to :class:`WorkspaceHierarchy`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from governance.core.errors import HierarchyError, NotFoundError


class WorkspaceType(str, Enum):
    """Levels of the workspace tree, most general first."""

    ROOT = "root"
    DEPARTMENT = "department"
    COMMITTEE = "committee"
    TEAM = "team"


@dataclass(frozen=True)
class WorkspaceNode:
    """Read-only view of one workspace as supplied by the workspace directory."""
    id: UUID
    name: str
    workspace_type: WorkspaceType
    parent_id: Optional[UUID] = None
    event_id: Optional[UUID] = None


class WorkspaceHierarchy:
    """
    Ancestor and descendant queries over a workspace tree.

    Nodes may span several events; each event's tree is independent because
    parent links never cross events.
    """

    def __init__(self, nodes: Iterable[WorkspaceNode]):
        self._nodes: Dict[UUID, WorkspaceNode] = {}
        self._children: Dict[UUID, List[UUID]] = {}
        for node in nodes:
            self._nodes[node.id] = node
        for node in self._nodes.values():
            if node.parent_id is not None:
                self._children.setdefault(node.parent_id, []).append(node.id)

    @classmethod
    def for_event(cls, db: Session, event_id: UUID) -> "WorkspaceHierarchy":
        """Load every workspace of an event from the database."""
        from governance.db.models import Workspace

        rows = db.query(Workspace).filter(Workspace.event_id == event_id).all()
        return cls(_to_node(row) for row in rows)

    @classmethod
    def for_workspace(cls, db: Session, workspace_id: UUID) -> "WorkspaceHierarchy":
        """Load the whole tree that ``workspace_id`` belongs to."""
        from governance.db.models import Workspace

        workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
        if not workspace:
            raise NotFoundError("workspace", workspace_id)
        return cls.for_event(db, workspace.event_id)

    def __contains__(self, workspace_id: UUID) -> bool:
        return workspace_id in self._nodes

    def get(self, workspace_id: UUID) -> WorkspaceNode:
        node = self._nodes.get(workspace_id)
        if node is None:
            raise NotFoundError("workspace", workspace_id)
        return node

    def children_of(self, workspace_id: UUID) -> List[WorkspaceNode]:
        self.get(workspace_id)
        return [self._nodes[c] for c in self._children.get(workspace_id, [])]

    def ancestors_of(self, workspace_id: UUID) -> List[UUID]:
        """
        Ancestor ids ordered from the immediate parent up to the root.

        Raises:
            NotFoundError: If the workspace is unknown
            HierarchyError: If the parent chain loops
        """
        node = self.get(workspace_id)
        ancestors: List[UUID] = []
        seen = {node.id}
        parent_id = node.parent_id
        while parent_id is not None:
            if parent_id in seen:
                raise HierarchyError(f"Cycle in workspace hierarchy at {parent_id}")
            parent = self._nodes.get(parent_id)
            if parent is None:
                # Parent outside the loaded graph ends the chain
                break
            seen.add(parent_id)
            ancestors.append(parent_id)
            parent_id = parent.parent_id
        return ancestors

    def is_ancestor(self, candidate_id: UUID, workspace_id: UUID, *, reflexive: bool) -> bool:
        """
        Whether ``candidate_id`` sits above ``workspace_id``.

        With ``reflexive=True`` a workspace counts as its own ancestor.
        Unknown ids raise ``NotFoundError``.
        """
        self.get(candidate_id)
        if reflexive and candidate_id == workspace_id:
            return True
        return candidate_id in self.ancestors_of(workspace_id)

    def descendants_of(self, workspace_id: UUID, levels: Optional[int] = None) -> Set[UUID]:
        """
        Ids of all workspaces below ``workspace_id``.

        Args:
            workspace_id: Workspace to start from (excluded from the result)
            levels: Depth bound; 1 returns direct children only, None is unbounded
        """
        self.get(workspace_id)
        found: Set[UUID] = set()
        frontier = [workspace_id]
        depth = 0
        while frontier and (levels is None or depth < levels):
            next_frontier = []
            for current in frontier:
                for child in self._children.get(current, []):
                    if child in found or child == workspace_id:
                        continue
                    found.add(child)
                    next_frontier.append(child)
            frontier = next_frontier
            depth += 1
        return found

    def depth_of(self, workspace_id: UUID) -> int:
        """Distance from the root (root is 0)."""
        return len(self.ancestors_of(workspace_id))

    def root_of(self, workspace_id: UUID) -> WorkspaceNode:
        ancestors = self.ancestors_of(workspace_id)
        return self.get(ancestors[-1]) if ancestors else self.get(workspace_id)


def _to_node(row) -> WorkspaceNode:
    return WorkspaceNode(
        id=row.id,
        name=row.name,
        workspace_type=WorkspaceType(row.workspace_type),
        parent_id=row.parent_workspace_id,
        event_id=row.event_id,
    )
