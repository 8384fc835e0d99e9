"""
Mutation engine.

Grows a conversation tree: appending a turn, forking a user message by
editing it, and forking an assistant reply by regenerating it. Each mutation
awaits one reply from the ReplyGenerator; while it does, the conversation is
in flight and any further mutation is rejected with BusyError.

Nodes are committed (and persisted) as soon as they exist. An assistant node
is only created once the complete reply is in hand, so a failed or cancelled
request never leaves a partial reply in the tree.
"""

import asyncio
import enum
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from chatfork.branching.conversation import Conversation
from chatfork.branching.navigator import BranchNavigator
from chatfork.branching.projector import entries_for
from chatfork.exceptions import (
    BusyError,
    InvalidContentError,
    InvalidRoleError,
    ReplyCancelledError,
    ReplyGenerationFailedError,
    RootForkError,
)
from chatfork.generation.base import GeneratedReply, ReplyGenerator
from chatfork.models.tree import MessageNode, MessageRole
from chatfork.storage.base import ConversationStore

logger = logging.getLogger(__name__)


class FlightState(str, enum.Enum):
    """Per-conversation state of the reply request."""

    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class _Flight:
    state: FlightState = FlightState.IDLE
    task: Optional[asyncio.Future] = None
    cancel_requested: bool = False


class MutationEngine:
    """Applies branching mutations to conversations.

    Args:
        generator: Produces assistant replies
        store: Optional persistence backend; when set, the conversation is
            saved after every committed node and every branch switch
    """

    def __init__(
        self,
        generator: ReplyGenerator,
        store: Optional[ConversationStore] = None,
    ):
        self.generator = generator
        self.store = store
        self._flights: dict[str, _Flight] = {}

    # ===== State =====

    def state_of(self, conversation_id: str) -> FlightState:
        flight = self._flights.get(conversation_id)
        return flight.state if flight else FlightState.IDLE

    def is_busy(self, conversation_id: str) -> bool:
        return self.state_of(conversation_id) is FlightState.AWAITING_REPLY

    def _check_not_busy(self, conversation: Conversation) -> None:
        if self.is_busy(conversation.id):
            raise BusyError(conversation.id)

    @contextmanager
    def _in_flight(self, conversation: Conversation) -> Iterator[_Flight]:
        flight = self._flights.setdefault(conversation.id, _Flight())
        if flight.state is FlightState.AWAITING_REPLY:
            raise BusyError(conversation.id)

        flight.state = FlightState.AWAITING_REPLY
        flight.cancel_requested = False
        try:
            yield flight
        except (ReplyCancelledError, asyncio.CancelledError):
            flight.state = FlightState.IDLE
            raise
        except BaseException:
            flight.state = FlightState.FAILED
            raise
        else:
            flight.state = FlightState.COMMITTED
        finally:
            flight.task = None

    def cancel(self, conversation_id: str) -> bool:
        """
        Cancel the reply request in flight for a conversation.

        The pending operation raises ReplyCancelledError and the state
        returns to IDLE without inserting a node or moving the active leaf.

        Returns:
            True if a request was cancelled, False if none was in flight
        """
        flight = self._flights.get(conversation_id)
        if flight is None or flight.state is not FlightState.AWAITING_REPLY:
            return False
        if flight.task is None or flight.task.done():
            return False
        flight.cancel_requested = True
        flight.task.cancel()
        logger.info(f"Cancelling reply request for conversation {conversation_id}")
        return True

    # ===== Mutations =====

    async def append_turn(
        self,
        conversation: Conversation,
        user_content: str,
        attachments: Sequence[str] = (),
    ) -> MessageNode:
        """
        Append a user turn at the active leaf and request the reply.

        The user node is committed before the request is issued. If the
        request fails, it stays in the tree as the active leaf.

        Args:
            conversation: Conversation to extend
            user_content: Text of the user message
            attachments: Image references sent with the message

        Returns:
            The new assistant node (the new active leaf)

        Raises:
            BusyError: If a reply is already in flight for the conversation
            InvalidContentError: If both text and attachments are empty
            ReplyGenerationFailedError: If the generator fails
            ReplyCancelledError: If cancel() was called while waiting
        """
        self._check_not_busy(conversation)
        if not user_content.strip() and not attachments:
            raise InvalidContentError("message is empty")

        navigator = BranchNavigator(conversation.nodes)
        parent_id = conversation.active_leaf_id
        if parent_id is None and conversation.nodes.root_id is not None:
            parent_id = navigator.preferred_leaf(conversation.nodes.root_id)

        with self._in_flight(conversation) as flight:
            user_node = self._commit(
                conversation,
                MessageNode(
                    role=MessageRole.USER,
                    content=user_content,
                    parent_id=parent_id,
                    attachments=list(attachments),
                ),
            )
            conversation.derive_title(user_content)
            navigator.activate(conversation, user_node.id)
            self._persist(conversation)

            return await self._answer(conversation, flight, user_node)

    async def edit_message(
        self,
        conversation: Conversation,
        target_node_id: str,
        new_content: str,
    ) -> MessageNode:
        """
        Fork a user message: add a sibling carrying ``new_content``.

        The original message and everything under it stay untouched. The new
        sibling keeps the original's attachments and is answered exactly as
        append_turn would answer it.

        Returns:
            The new assistant node under the edited sibling

        Raises:
            NodeNotFoundError: If the target id is unknown
            InvalidRoleError: If the target is not a user message
            InvalidContentError: If the new content is blank or unchanged
            RootForkError: If the target is the conversation root
            BusyError: If a reply is already in flight
            ReplyGenerationFailedError: If the generator fails
        """
        self._check_not_busy(conversation)
        target = conversation.nodes.get(target_node_id)
        if target.role is not MessageRole.USER:
            raise InvalidRoleError(target.id, target.role.value, MessageRole.USER.value)
        if not new_content.strip():
            raise InvalidContentError("content is blank", node_id=target.id)
        if new_content == target.content:
            raise InvalidContentError("content is unchanged", node_id=target.id)
        if target.is_root:
            raise RootForkError(target.id)

        navigator = BranchNavigator(conversation.nodes)
        with self._in_flight(conversation) as flight:
            sibling = self._commit(
                conversation,
                MessageNode(
                    role=MessageRole.USER,
                    content=new_content,
                    parent_id=target.parent_id,
                    attachments=list(target.attachments),
                ),
            )
            navigator.activate(conversation, sibling.id)
            self._persist(conversation)

            return await self._answer(conversation, flight, sibling)

    async def regenerate(
        self, conversation: Conversation, assistant_node_id: str
    ) -> MessageNode:
        """
        Fork an assistant reply: request a new reply for the same prefix.

        The new reply becomes a sibling of the original and the active leaf.
        On failure nothing is inserted and the active leaf does not move.

        Returns:
            The new assistant node

        Raises:
            NodeNotFoundError: If the node id is unknown
            InvalidRoleError: If the node is not an assistant reply
            BusyError: If a reply is already in flight
            ReplyGenerationFailedError: If the generator fails
        """
        self._check_not_busy(conversation)
        target = conversation.nodes.get(assistant_node_id)
        if target.role is not MessageRole.ASSISTANT:
            raise InvalidRoleError(
                target.id, target.role.value, MessageRole.ASSISTANT.value
            )
        if target.is_root:
            raise RootForkError(target.id)

        prompt = conversation.nodes.get(target.parent_id)
        with self._in_flight(conversation) as flight:
            return await self._answer(conversation, flight, prompt)

    async def retry_reply(
        self, conversation: Conversation, user_node_id: str
    ) -> MessageNode:
        """
        Request a reply for a user message, adding it as a new child.

        This is how a caller recovers after append_turn or edit_message
        raised ReplyGenerationFailedError.

        Raises:
            NodeNotFoundError: If the node id is unknown
            InvalidRoleError: If the node is not a user message
            BusyError: If a reply is already in flight
            ReplyGenerationFailedError: If the generator fails
        """
        self._check_not_busy(conversation)
        prompt = conversation.nodes.get(user_node_id)
        if prompt.role is not MessageRole.USER:
            raise InvalidRoleError(prompt.id, prompt.role.value, MessageRole.USER.value)

        with self._in_flight(conversation) as flight:
            return await self._answer(conversation, flight, prompt)

    def select_branch(
        self, conversation: Conversation, node_id: str, branch_index: int
    ) -> str:
        """
        Switch branches and persist the new active leaf.

        Rejected with BusyError while a reply is in flight, since the pending
        mutation will also move the active leaf.
        """
        self._check_not_busy(conversation)
        leaf_id = BranchNavigator(conversation.nodes).select_branch(
            conversation, node_id, branch_index
        )
        self._persist(conversation)
        return leaf_id

    def step_branch(self, conversation: Conversation, node_id: str, delta: int) -> str:
        """Move to the previous (-1) or next (+1) sibling and persist."""
        self._check_not_busy(conversation)
        leaf_id = BranchNavigator(conversation.nodes).step_branch(
            conversation, node_id, delta
        )
        self._persist(conversation)
        return leaf_id

    # ===== Internals =====

    async def _answer(
        self,
        conversation: Conversation,
        flight: _Flight,
        prompt: MessageNode,
    ) -> MessageNode:
        """Request a reply to the path ending at ``prompt`` and commit it."""
        navigator = BranchNavigator(conversation.nodes)
        entries = entries_for(navigator.path_to(prompt.id))
        attachments = list(prompt.attachments) if prompt.role is MessageRole.USER else []

        reply = await self._request(conversation, flight, entries, attachments, prompt.id)

        assistant = self._commit(
            conversation,
            MessageNode(
                role=MessageRole.ASSISTANT,
                content=reply.content,
                parent_id=prompt.id,
                model=reply.model,
            ),
        )
        navigator.activate(conversation, assistant.id)
        self._persist(conversation)
        return assistant

    async def _request(
        self,
        conversation: Conversation,
        flight: _Flight,
        entries: list,
        attachments: list[str],
        prompt_id: str,
    ) -> GeneratedReply:
        flight.task = asyncio.ensure_future(
            self.generator.generate_reply(
                entries, conversation.model, attachments or None
            )
        )
        try:
            reply = await flight.task
        except asyncio.CancelledError:
            if flight.cancel_requested:
                raise ReplyCancelledError(conversation.id) from None
            raise
        except Exception as e:
            logger.warning(
                f"Reply generation failed for conversation {conversation.id} "
                f"at node {prompt_id}: {e}"
            )
            raise ReplyGenerationFailedError(
                conversation.id, prompt_id, str(e) or type(e).__name__
            ) from e

        if not reply.content or not reply.content.strip():
            logger.warning(
                f"Empty reply from {reply.model} for conversation {conversation.id}"
            )
            raise ReplyGenerationFailedError(
                conversation.id, prompt_id, "generator returned an empty reply"
            )

        logger.debug(
            f"Reply for {prompt_id} from {reply.model}: "
            f"{reply.total_tokens} tokens in {reply.duration_ms:.0f}ms"
        )
        return reply

    def _commit(self, conversation: Conversation, node: MessageNode) -> MessageNode:
        conversation.add_node(node)
        logger.debug(
            f"Committed {node.role.value} node {node.id} to conversation "
            f"{conversation.id} (parent={node.parent_id}, branch={node.branch_index})"
        )
        return node

    def _persist(self, conversation: Conversation) -> None:
        if self.store is not None:
            self.store.save(conversation)
