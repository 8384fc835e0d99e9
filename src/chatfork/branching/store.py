"""
Message node store.

Arena of message nodes for a single conversation, keyed by id, with a child
index per parent so sibling lookups never scan the whole tree.
"""

from collections import defaultdict, deque
from collections.abc import Iterable, Iterator, Mapping
from typing import Optional

from chatfork.exceptions import (
    BranchIndexConflictError,
    CorruptTreeError,
    DanglingParentError,
    DuplicateIdError,
    NodeNotFoundError,
    RootExistsError,
)
from chatfork.models.tree import MessageNode

_MISSING = object()


class MessageNodeStore(Mapping[str, MessageNode]):
    """Append-only mapping of node id to MessageNode.

    Nodes are never removed. Child lists are kept in insertion order, which
    is also ``branch_index`` order.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, MessageNode] = {}
        self._children: dict[str, list[str]] = {}
        self._root_id: Optional[str] = None
        self._clock = 0

    @classmethod
    def from_nodes(cls, nodes: Iterable[MessageNode]) -> "MessageNodeStore":
        """Rebuild a store from persisted nodes, preserving their branch indices.

        Nodes may arrive in any order; they are attached breadth-first from
        the root so every parent is present before its children.

        Raises:
            DanglingParentError: If a node is unreachable from the root
            BranchIndexConflictError: If siblings are not numbered 0..n-1
        """
        store = cls()
        all_nodes = list(nodes)
        by_parent: dict[Optional[str], list[MessageNode]] = defaultdict(list)
        for node in all_nodes:
            by_parent[node.parent_id].append(node)

        queue = deque(by_parent.get(None, []))
        while queue:
            node = queue.popleft()
            if node.parent_id is None and node.branch_index != 0:
                raise BranchIndexConflictError(node.id, node.branch_index, 0)
            store._attach(node, keep_branch_index=True)
            children = sorted(by_parent.get(node.id, []), key=lambda n: n.branch_index)
            for position, child in enumerate(children):
                if child.branch_index != position:
                    raise BranchIndexConflictError(child.id, child.branch_index, position)
            queue.extend(children)

        if len(store) != len(all_nodes):
            for node in all_nodes:
                if node.id not in store._nodes:
                    raise DanglingParentError(node.id, str(node.parent_id))
        return store

    @property
    def root_id(self) -> Optional[str]:
        return self._root_id

    def next_tick(self) -> int:
        """Advance and return the logical clock used for ``created_at``."""
        self._clock += 1
        return self._clock

    def insert(self, node: MessageNode) -> MessageNode:
        """
        Insert a new node and index it under its parent.

        The node's ``branch_index`` is set to the number of children the
        parent already has.

        Args:
            node: Node to insert

        Returns:
            The inserted node

        Raises:
            DuplicateIdError: If the id is already stored
            DanglingParentError: If the parent id is unknown
            RootExistsError: If the node is parentless and a root exists
        """
        return self._attach(node, keep_branch_index=False)

    def _attach(self, node: MessageNode, keep_branch_index: bool) -> MessageNode:
        if node.id in self._nodes:
            raise DuplicateIdError(node.id)

        if node.parent_id is None:
            if self._root_id is not None:
                raise RootExistsError(node.id, self._root_id)
            siblings: list[str] = []
        else:
            if node.parent_id not in self._nodes:
                raise DanglingParentError(node.id, node.parent_id)
            siblings = self._children.setdefault(node.parent_id, [])

        if not keep_branch_index:
            node.branch_index = len(siblings)

        self._nodes[node.id] = node
        if node.parent_id is None:
            self._root_id = node.id
        else:
            siblings.append(node.id)
        self._clock = max(self._clock, node.created_at)
        return node

    def get(self, node_id: str, default=_MISSING):  # type: ignore[override]
        """
        Return the node with the given id.

        Unlike ``dict.get``, a missing id raises NodeNotFoundError unless a
        default is passed explicitly.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            if default is not _MISSING:
                return default
            raise NodeNotFoundError(node_id) from None

    def children_of(self, node_id: str) -> list[MessageNode]:
        """Return direct children of a node ordered by branch index."""
        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)
        return [self._nodes[cid] for cid in self._children.get(node_id, [])]

    def ancestors_of(self, node_id: str) -> Iterator[MessageNode]:
        """
        Yield the node and each of its ancestors up to the root, inclusive.

        Raises:
            NodeNotFoundError: If node_id is unknown
            CorruptTreeError: If the walk visits more nodes than are stored
        """
        node = self.get(node_id)
        steps = 0
        while True:
            steps += 1
            if steps > len(self._nodes):
                raise CorruptTreeError(node_id)
            yield node
            if node.parent_id is None:
                return
            node = self.get(node.parent_id)

    def __getitem__(self, node_id: str) -> MessageNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __repr__(self) -> str:
        return f"<MessageNodeStore(nodes={len(self._nodes)}, root_id={self._root_id})>"
