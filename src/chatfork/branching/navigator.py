"""
Branch navigation.

Resolves sibling branches and the active root-to-leaf path of a conversation.
When the user switches branch at an interior message, the navigator descends
through the most recently active continuation under the chosen sibling so
the transcript never truncates at the switch point.
"""

import logging
from typing import NamedTuple

from chatfork.branching.conversation import Conversation
from chatfork.branching.store import MessageNodeStore
from chatfork.exceptions import BranchIndexOutOfRangeError
from chatfork.models.tree import MessageNode

logger = logging.getLogger(__name__)


class SiblingInfo(NamedTuple):
    """Siblings sharing a node's parent and the node's own position."""

    sibling_ids: list[str]
    index: int

    @property
    def count(self) -> int:
        return len(self.sibling_ids)


class BranchNavigator:
    """Read-mostly view over a conversation's node store."""

    def __init__(self, store: MessageNodeStore):
        self.store = store

    def siblings_of(self, node_id: str) -> SiblingInfo:
        """
        Return the ids of all nodes sharing ``node_id``'s parent.

        The root never branches, so its sibling list is itself alone.
        """
        node = self.store.get(node_id)
        if node.parent_id is None:
            return SiblingInfo([node.id], 0)
        siblings = [child.id for child in self.store.children_of(node.parent_id)]
        return SiblingInfo(siblings, siblings.index(node.id))

    def path_to(self, leaf_id: str) -> list[MessageNode]:
        """Return the root-to-leaf sequence of nodes ending at ``leaf_id``."""
        path = list(self.store.ancestors_of(leaf_id))
        path.reverse()
        return path

    def preferred_leaf(self, node_id: str) -> str:
        """
        Follow the preferred descendant chain from a node down to a leaf.

        At each level take the recorded last-active child, or the
        last-created child when nothing was recorded.
        """
        node = self.store.get(node_id)
        for _ in range(len(self.store)):
            children = self.store.children_of(node.id)
            if not children:
                return node.id
            preferred = node.last_active_child_id
            if preferred is not None and preferred in self.store:
                node = self.store.get(preferred)
            else:
                node = children[-1]
        return node.id

    def activate(self, conversation: Conversation, leaf_id: str) -> str:
        """
        Make ``leaf_id`` the active leaf and record it as the preferred
        continuation at every ancestor along its path.
        """
        path = self.path_to(leaf_id)
        for parent, child in zip(path, path[1:]):
            parent.last_active_child_id = child.id
        conversation.active_leaf_id = leaf_id
        return leaf_id

    def select_branch(
        self, conversation: Conversation, node_id: str, branch_index: int
    ) -> str:
        """
        Switch to the sibling at ``branch_index`` among ``node_id``'s siblings.

        Args:
            conversation: Conversation whose active leaf is updated
            node_id: Any node in the tree
            branch_index: Target position among that node's siblings

        Returns:
            The new active leaf id

        Raises:
            NodeNotFoundError: If node_id is unknown
            BranchIndexOutOfRangeError: If branch_index names no sibling
        """
        siblings = self.siblings_of(node_id)
        if branch_index < 0 or branch_index >= siblings.count:
            raise BranchIndexOutOfRangeError(node_id, branch_index, siblings.count)

        target = siblings.sibling_ids[branch_index]
        leaf_id = self.preferred_leaf(target)
        logger.debug(
            f"Selected branch {branch_index} at {node_id} in {conversation.id}, "
            f"active leaf now {leaf_id}"
        )
        return self.activate(conversation, leaf_id)

    def step_branch(self, conversation: Conversation, node_id: str, delta: int) -> str:
        """Move ``delta`` siblings left or right of ``node_id``."""
        siblings = self.siblings_of(node_id)
        return self.select_branch(conversation, node_id, siblings.index + delta)
