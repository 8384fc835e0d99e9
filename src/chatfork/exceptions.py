"""Custom exceptions for chatfork."""

from typing import Optional


class ChatforkError(Exception):
    """Base class for all chatfork errors."""


class NodeNotFoundError(ChatforkError, KeyError):
    """Raised when a message node id is not present in a conversation."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Message node {node_id} not found")

    def __str__(self) -> str:
        # KeyError quotes its argument otherwise
        return self.args[0]


class InvalidRoleError(ChatforkError):
    """Raised when an operation is applied to a node with the wrong role."""

    def __init__(self, node_id: str, actual: str, expected: str):
        self.node_id = node_id
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Message node {node_id} has role {actual!r}, expected {expected!r}"
        )


class InvalidContentError(ChatforkError, ValueError):
    """Raised when a new or edited message carries unusable content."""

    def __init__(self, reason: str, node_id: Optional[str] = None):
        self.node_id = node_id
        self.reason = reason
        if node_id:
            super().__init__(f"Cannot edit message node {node_id}: {reason}")
        else:
            super().__init__(f"Invalid message content: {reason}")


class RootForkError(ChatforkError):
    """Raised when an edit would create a sibling of the conversation root."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(
            f"Message node {node_id} is the conversation root and cannot be forked"
        )


class BranchIndexOutOfRangeError(ChatforkError, IndexError):
    """Raised when a branch selection index does not name an existing sibling."""

    def __init__(self, node_id: str, branch_index: int, sibling_count: int):
        self.node_id = node_id
        self.branch_index = branch_index
        self.sibling_count = sibling_count
        super().__init__(
            f"Branch index {branch_index} out of range for node {node_id} "
            f"({sibling_count} sibling(s))"
        )


class BusyError(ChatforkError):
    """Raised when a mutation starts while another awaits its reply."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(
            f"Conversation {conversation_id} already has a reply in flight"
        )


class StoreIntegrityError(ChatforkError):
    """Base class for violations of the node store's structural invariants.

    These indicate programmer error and should never surface in normal use.
    """


class DuplicateIdError(StoreIntegrityError):
    """Raised when inserting a node whose id is already stored."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Message node {node_id} already exists")


class DanglingParentError(StoreIntegrityError):
    """Raised when inserting a node whose parent is not stored."""

    def __init__(self, node_id: str, parent_id: str):
        self.node_id = node_id
        self.parent_id = parent_id
        super().__init__(
            f"Message node {node_id} references unknown parent {parent_id}"
        )


class RootExistsError(StoreIntegrityError):
    """Raised when inserting a second parentless node."""

    def __init__(self, node_id: str, root_id: str):
        self.node_id = node_id
        self.root_id = root_id
        super().__init__(
            f"Cannot insert root node {node_id}: conversation already rooted at {root_id}"
        )


class BranchIndexConflictError(StoreIntegrityError):
    """Raised when loaded siblings do not number exactly 0..n-1."""

    def __init__(self, node_id: str, branch_index: int, expected: int):
        self.node_id = node_id
        self.branch_index = branch_index
        self.expected = expected
        super().__init__(
            f"Message node {node_id} has branch index {branch_index}, "
            f"expected {expected}"
        )


class InvalidActiveLeafError(StoreIntegrityError):
    """Raised when a conversation's active leaf is not one of its nodes."""

    def __init__(self, conversation_id: str, active_leaf_id: Optional[str]):
        self.conversation_id = conversation_id
        self.active_leaf_id = active_leaf_id
        super().__init__(
            f"Conversation {conversation_id} has active leaf {active_leaf_id}, "
            f"which is not a stored message node"
        )


class CorruptTreeError(StoreIntegrityError):
    """Raised when walking parent links does not terminate at a root."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Cycle detected while walking ancestors of {node_id}")


class ReplyGenerationFailedError(ChatforkError):
    """Raised when the reply generator fails.

    Recoverable: every node committed before the failing request is kept and
    persisted, and the caller may retry explicitly.
    """

    def __init__(
        self,
        conversation_id: str,
        node_id: Optional[str],
        reason: str,
    ):
        self.conversation_id = conversation_id
        self.node_id = node_id
        self.reason = reason
        message = f"Reply generation failed for conversation {conversation_id}"
        if node_id:
            message += f" at node {node_id}"
        super().__init__(f"{message}: {reason}")


class ReplyCancelledError(ChatforkError):
    """Raised when an in-flight reply request is cancelled via the engine."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Reply request for conversation {conversation_id} cancelled")


class PersistenceError(ChatforkError):
    """Raised when a conversation cannot be saved or loaded."""


class ConversationNotFoundError(PersistenceError):
    """Raised when loading a conversation id the store does not hold."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")
