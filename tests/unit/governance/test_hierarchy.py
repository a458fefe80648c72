"""Tests for workspace hierarchy traversal."""

import pytest
from uuid import uuid4

from governance.core.errors import HierarchyError, NotFoundError
from governance.core.hierarchy import WorkspaceHierarchy, WorkspaceNode, WorkspaceType


@pytest.fixture
def nodes():
    event = uuid4()
    root = WorkspaceNode(uuid4(), "Root", WorkspaceType.ROOT, None, event)
    dept = WorkspaceNode(uuid4(), "Dept", WorkspaceType.DEPARTMENT, root.id, event)
    other = WorkspaceNode(uuid4(), "Other", WorkspaceType.DEPARTMENT, root.id, event)
    committee = WorkspaceNode(uuid4(), "Committee", WorkspaceType.COMMITTEE, dept.id, event)
    team = WorkspaceNode(uuid4(), "Team", WorkspaceType.TEAM, committee.id, event)
    return {"root": root, "dept": dept, "other": other, "committee": committee, "team": team}


@pytest.fixture
def hierarchy(nodes):
    return WorkspaceHierarchy(nodes.values())


class TestAncestors:
    """Test ancestor chains."""

    def test_ancestors_parent_first(self, hierarchy, nodes):
        assert hierarchy.ancestors_of(nodes["team"].id) == [
            nodes["committee"].id, nodes["dept"].id, nodes["root"].id,
        ]

    def test_root_has_no_ancestors(self, hierarchy, nodes):
        assert hierarchy.ancestors_of(nodes["root"].id) == []

    def test_unknown_workspace(self, hierarchy):
        with pytest.raises(NotFoundError):
            hierarchy.ancestors_of(uuid4())

    def test_cycle_detected(self):
        a, b = uuid4(), uuid4()
        looped = WorkspaceHierarchy([
            WorkspaceNode(a, "A", WorkspaceType.DEPARTMENT, b),
            WorkspaceNode(b, "B", WorkspaceType.COMMITTEE, a),
        ])
        with pytest.raises(HierarchyError):
            looped.ancestors_of(a)

    def test_missing_parent_ends_chain(self):
        orphan = WorkspaceNode(uuid4(), "Orphan", WorkspaceType.TEAM, uuid4())
        assert WorkspaceHierarchy([orphan]).ancestors_of(orphan.id) == []


class TestIsAncestor:
    """Test strict and reflexive ancestry."""

    def test_strict(self, hierarchy, nodes):
        assert hierarchy.is_ancestor(nodes["root"].id, nodes["team"].id, reflexive=False)
        assert hierarchy.is_ancestor(nodes["dept"].id, nodes["committee"].id, reflexive=False)
        assert not hierarchy.is_ancestor(nodes["team"].id, nodes["root"].id, reflexive=False)

    def test_self(self, hierarchy, nodes):
        dept = nodes["dept"].id
        assert not hierarchy.is_ancestor(dept, dept, reflexive=False)
        assert hierarchy.is_ancestor(dept, dept, reflexive=True)

    def test_sibling_branch(self, hierarchy, nodes):
        assert not hierarchy.is_ancestor(nodes["other"].id, nodes["committee"].id, reflexive=False)
        assert not hierarchy.is_ancestor(nodes["other"].id, nodes["committee"].id, reflexive=True)

    def test_reflexive_is_keyword_only(self, hierarchy, nodes):
        with pytest.raises(TypeError):
            hierarchy.is_ancestor(nodes["root"].id, nodes["dept"].id)


class TestDescendants:
    """Test descendant queries."""

    def test_all_descendants(self, hierarchy, nodes):
        assert hierarchy.descendants_of(nodes["root"].id) == {
            nodes["dept"].id, nodes["other"].id, nodes["committee"].id, nodes["team"].id,
        }

    def test_direct_children_only(self, hierarchy, nodes):
        assert hierarchy.descendants_of(nodes["root"].id, levels=1) == {
            nodes["dept"].id, nodes["other"].id,
        }

    def test_two_levels(self, hierarchy, nodes):
        assert nodes["team"].id not in hierarchy.descendants_of(nodes["root"].id, levels=2)
        assert nodes["committee"].id in hierarchy.descendants_of(nodes["root"].id, levels=2)

    def test_leaf(self, hierarchy, nodes):
        assert hierarchy.descendants_of(nodes["team"].id) == set()

    def test_descendant_iff_ancestor(self, hierarchy, nodes):
        for a in nodes.values():
            below = hierarchy.descendants_of(a.id)
            for b in nodes.values():
                assert (b.id in below) == hierarchy.is_ancestor(a.id, b.id, reflexive=False)


class TestHelpers:

    def test_depth_and_root(self, hierarchy, nodes):
        assert hierarchy.depth_of(nodes["root"].id) == 0
        assert hierarchy.depth_of(nodes["committee"].id) == 2
        assert hierarchy.root_of(nodes["team"].id) == nodes["root"]
        assert hierarchy.root_of(nodes["root"].id) == nodes["root"]

    def test_children_and_contains(self, hierarchy, nodes):
        children = {n.id for n in hierarchy.children_of(nodes["root"].id)}
        assert children == {nodes["dept"].id, nodes["other"].id}
        assert nodes["team"].id in hierarchy
        assert uuid4() not in hierarchy
