"""
Pytest configuration and fixtures for chatfork tests.

This module provides shared fixtures for the branching engine, a scripted
reply generator, and a throwaway database for repository tests.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from chatfork.branching.conversation import Conversation, new_conversation
from chatfork.branching.engine import MutationEngine
from chatfork.branching.navigator import BranchNavigator
from chatfork.branching.projector import TranscriptEntry
from chatfork.generation.base import GeneratedReply, ReplyGenerator
from chatfork.models.db import Base
from chatfork.models.tree import MessageNode, MessageRole
from chatfork.storage.memory import InMemoryConversationStore


class FakeReplyGenerator(ReplyGenerator):
    """Deterministic reply generator for tests.

    Replies are taken from ``replies`` in order, falling back to
    "reply <n>". Setting ``error`` makes every call fail; setting ``gate``
    holds every call until the event is set.
    """

    def __init__(self, replies: Optional[list[str]] = None, model: str = "fake-model"):
        self.replies = list(replies or [])
        self.model = model
        self.calls: list[dict] = []
        self.error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None

    @property
    def provider_name(self) -> str:
        return "fake"

    async def generate_reply(
        self,
        messages: Sequence[TranscriptEntry],
        model: str,
        attachments: Optional[Sequence[str]] = None,
    ) -> GeneratedReply:
        self.calls.append(
            {"messages": list(messages), "model": model, "attachments": attachments}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if self.replies else f"reply {len(self.calls)}"
        return GeneratedReply(content=content, model=self.model)

    def contents_of_call(self, index: int = -1) -> list[str]:
        return [m.content for m in self.calls[index]["messages"]]


@dataclass
class SeededTree:
    """root(system) -> A(user, "hi") -> B(assistant, "hello"), active leaf B."""

    conversation: Conversation
    root: MessageNode
    a: MessageNode
    b: MessageNode


@pytest.fixture
def generator() -> FakeReplyGenerator:
    """Scripted reply generator."""
    return FakeReplyGenerator()


@pytest.fixture
def memory_store() -> InMemoryConversationStore:
    """Empty in-memory conversation store."""
    return InMemoryConversationStore()


@pytest.fixture
def engine(
    generator: FakeReplyGenerator, memory_store: InMemoryConversationStore
) -> MutationEngine:
    """Mutation engine wired to the fake generator and in-memory store."""
    return MutationEngine(generator, store=memory_store)


@pytest.fixture
def seeded() -> SeededTree:
    """A three-node conversation with a system root."""
    conversation = new_conversation(title="Greetings", system_prompt="You are helpful.")
    root = conversation.nodes.get(conversation.active_leaf_id)
    a = conversation.add_node(
        MessageNode(role=MessageRole.USER, content="hi", parent_id=root.id)
    )
    b = conversation.add_node(
        MessageNode(role=MessageRole.ASSISTANT, content="hello", parent_id=a.id)
    )
    BranchNavigator(conversation.nodes).activate(conversation, b.id)
    return SeededTree(conversation=conversation, root=root, a=a, b=b)


@pytest.fixture
def wait_for_calls(generator: FakeReplyGenerator):
    """Return a coroutine function that yields until the generator is called."""

    async def _wait(count: int = 1) -> None:
        while len(generator.calls) < count:
            await asyncio.sleep(0)

    return _wait


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """
    Create a new database session for a test.

    Each test gets a fresh session with a transaction that is rolled back
    after the test completes, ensuring test isolation.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection)()

    yield session

    session.close()
    transaction.rollback()
    connection.close()
