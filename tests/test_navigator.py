"""
Tests for branch navigation.
"""

import pytest

from chatfork.branching.navigator import BranchNavigator
from chatfork.exceptions import BranchIndexOutOfRangeError, NodeNotFoundError
from chatfork.models.tree import MessageNode, MessageRole


def add(conversation, role, content, parent_id):
    return conversation.add_node(
        MessageNode(role=role, content=content, parent_id=parent_id)
    )


class TestSiblings:
    """Tests for siblings_of."""

    def test_root_is_its_own_only_sibling(self, seeded):
        """Test that the root reports a single branch."""
        navigator = BranchNavigator(seeded.conversation.nodes)
        info = navigator.siblings_of(seeded.root.id)

        assert info.sibling_ids == [seeded.root.id]
        assert info.index == 0
        assert info.count == 1

    def test_siblings_include_node_position(self, seeded):
        """Test that a forked node knows where it sits among its siblings."""
        conversation = seeded.conversation
        edited = add(conversation, MessageRole.USER, "hey", seeded.root.id)
        navigator = BranchNavigator(conversation.nodes)

        info = navigator.siblings_of(edited.id)

        assert info.sibling_ids == [seeded.a.id, edited.id]
        assert info.index == 1
        assert navigator.siblings_of(seeded.a.id).index == 0

    def test_unknown_node(self, seeded):
        """Test that siblings_of rejects unknown ids."""
        with pytest.raises(NodeNotFoundError):
            BranchNavigator(seeded.conversation.nodes).siblings_of("nope")


class TestPaths:
    """Tests for path_to and preferred_leaf."""

    def test_path_runs_root_to_leaf(self, seeded):
        """Test that a path starts at the root and ends at the leaf."""
        navigator = BranchNavigator(seeded.conversation.nodes)
        path = navigator.path_to(seeded.b.id)

        assert [n.id for n in path] == [seeded.root.id, seeded.a.id, seeded.b.id]
        for parent, child in zip(path, path[1:]):
            assert child.parent_id == parent.id

    def test_path_to_root(self, seeded):
        """Test that the root's path is the root alone."""
        navigator = BranchNavigator(seeded.conversation.nodes)

        assert navigator.path_to(seeded.root.id) == [seeded.root]

    def test_preferred_leaf_defaults_to_newest_child(self, seeded):
        """Test that without a recorded choice the last-created child wins."""
        conversation = seeded.conversation
        seeded.a.last_active_child_id = None
        newer = add(conversation, MessageRole.ASSISTANT, "hey", seeded.a.id)

        navigator = BranchNavigator(conversation.nodes)

        assert navigator.preferred_leaf(seeded.a.id) == newer.id

    def test_preferred_leaf_follows_recorded_choice(self, seeded):
        """Test that the last-active child is followed when recorded."""
        conversation = seeded.conversation
        add(conversation, MessageRole.ASSISTANT, "hey", seeded.a.id)
        seeded.a.last_active_child_id = seeded.b.id

        navigator = BranchNavigator(conversation.nodes)

        assert navigator.preferred_leaf(seeded.root.id) == seeded.b.id

    def test_activate_records_choice_along_path(self, seeded):
        """Test that activating a leaf marks every ancestor's continuation."""
        conversation = seeded.conversation
        other = add(conversation, MessageRole.USER, "hey", seeded.root.id)
        reply = add(conversation, MessageRole.ASSISTANT, "yo", other.id)

        BranchNavigator(conversation.nodes).activate(conversation, reply.id)

        assert conversation.active_leaf_id == reply.id
        assert seeded.root.last_active_child_id == other.id
        assert other.last_active_child_id == reply.id


class TestSelectBranch:
    """Tests for select_branch and step_branch."""

    @pytest.fixture
    def forked(self, seeded):
        """Two user branches under the root, each with one reply.

        Branch 0: A -> B, branch 1: A' -> B'. Active leaf is B'.
        """
        conversation = seeded.conversation
        a2 = add(conversation, MessageRole.USER, "hey", seeded.root.id)
        b2 = add(conversation, MessageRole.ASSISTANT, "hey there", a2.id)
        BranchNavigator(conversation.nodes).activate(conversation, b2.id)
        return seeded, a2, b2

    def test_switch_descends_to_leaf(self, forked):
        """Test that switching at an interior node never truncates the path."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation
        navigator = BranchNavigator(conversation.nodes)

        leaf = navigator.select_branch(conversation, a2.id, 0)

        assert leaf == seeded.b.id
        assert conversation.active_leaf_id == seeded.b.id

    def test_switch_restores_last_active_continuation(self, forked):
        """Test that returning to a branch restores where the user left it."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation
        b3 = add(conversation, MessageRole.ASSISTANT, "howdy", a2.id)
        navigator = BranchNavigator(conversation.nodes)
        # b2 is still the recorded continuation under a2
        navigator.select_branch(conversation, seeded.a.id, 0)

        navigator.select_branch(conversation, seeded.a.id, 1)

        assert conversation.active_leaf_id == b2.id
        assert b3.id in {c.id for c in conversation.nodes.children_of(a2.id)}

    def test_switch_without_history_takes_newest(self, forked):
        """Test that an unvisited branch resolves through its newest children."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation
        seeded.a.last_active_child_id = None
        newest = add(conversation, MessageRole.ASSISTANT, "hello again", seeded.a.id)

        BranchNavigator(conversation.nodes).select_branch(conversation, a2.id, 0)

        assert conversation.active_leaf_id == newest.id

    def test_select_current_branch_is_idempotent(self, forked):
        """Test that selecting the current sibling leaves the tree unchanged."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation
        navigator = BranchNavigator(conversation.nodes)
        before = conversation.to_dict()

        navigator.select_branch(conversation, a2.id, 1)
        navigator.select_branch(conversation, a2.id, 1)

        assert conversation.active_leaf_id == b2.id
        assert conversation.to_dict()["nodes"] == before["nodes"]

    @pytest.mark.parametrize("index", [-1, 2, 10])
    def test_out_of_range(self, forked, index):
        """Test that indices outside the sibling list are rejected."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation

        with pytest.raises(BranchIndexOutOfRangeError) as exc_info:
            BranchNavigator(conversation.nodes).select_branch(
                conversation, a2.id, index
            )

        assert exc_info.value.sibling_count == 2
        assert conversation.active_leaf_id == b2.id

    def test_root_only_has_branch_zero(self, seeded):
        """Test that the root cannot switch to another branch."""
        conversation = seeded.conversation
        navigator = BranchNavigator(conversation.nodes)

        assert navigator.select_branch(conversation, seeded.root.id, 0) == seeded.b.id
        with pytest.raises(BranchIndexOutOfRangeError):
            navigator.select_branch(conversation, seeded.root.id, 1)

    def test_step_branch(self, forked):
        """Test moving to the previous and next sibling."""
        seeded, a2, b2 = forked
        conversation = seeded.conversation
        navigator = BranchNavigator(conversation.nodes)

        assert navigator.step_branch(conversation, a2.id, -1) == seeded.b.id
        assert navigator.step_branch(conversation, seeded.a.id, +1) == b2.id
        with pytest.raises(BranchIndexOutOfRangeError):
            navigator.step_branch(conversation, a2.id, +1)
