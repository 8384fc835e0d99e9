"""
Tests for conversation persistence backends.
"""

import json

import pytest

from chatfork.branching.conversation import new_conversation
from chatfork.branching.navigator import BranchNavigator
from chatfork.db.repositories import SqlConversationRepository
from chatfork.exceptions import ConversationNotFoundError, PersistenceError
from chatfork.models.db import ConversationRecord, MessageNodeRecord
from chatfork.models.tree import MessageNode, MessageRole
from chatfork.storage import InMemoryConversationStore, JsonFileConversationStore


@pytest.fixture
def branched(seeded):
    """The seeded tree with an edited branch and a regenerated reply.

    root -> A -> B, B2 and root -> A' -> B'. Active leaf B.
    """
    conversation = seeded.conversation
    b2 = conversation.add_node(
        MessageNode(
            role=MessageRole.ASSISTANT, content="hi!", parent_id=seeded.a.id, model="m1"
        )
    )
    a2 = conversation.add_node(
        MessageNode(
            role=MessageRole.USER,
            content="hey",
            parent_id=seeded.root.id,
            attachments=["https://example.com/cat.png"],
        )
    )
    conversation.add_node(
        MessageNode(role=MessageRole.ASSISTANT, content="hey there", parent_id=a2.id)
    )
    navigator = BranchNavigator(conversation.nodes)
    navigator.activate(conversation, b2.id)
    navigator.activate(conversation, seeded.b.id)
    return conversation


def assert_same_tree(loaded, original):
    assert loaded == original
    for node_id, node in original.nodes.items():
        restored = loaded.nodes.get(node_id)
        assert restored.parent_id == node.parent_id
        assert restored.branch_index == node.branch_index
    assert loaded.nodes.root_id == original.nodes.root_id


class TestInMemoryStore:
    """Tests for InMemoryConversationStore."""

    def test_round_trip(self, branched):
        """Test that save then load reproduces the tree."""
        store = InMemoryConversationStore()
        store.save(branched)

        loaded = store.load(branched.id)

        assert_same_tree(loaded, branched)
        assert loaded is not branched

    def test_loaded_copy_is_independent(self, branched):
        """Test that mutating a loaded copy does not touch the saved record."""
        store = InMemoryConversationStore()
        store.save(branched)

        store.load(branched.id).active_leaf_id = None

        assert store.load(branched.id).active_leaf_id == branched.active_leaf_id

    def test_not_found(self):
        """Test that unknown ids raise ConversationNotFoundError."""
        with pytest.raises(ConversationNotFoundError):
            InMemoryConversationStore().load("missing")

    def test_exists(self, branched):
        """Test exists() against list_ids()."""
        store = InMemoryConversationStore()
        store.save(branched)

        assert store.exists(branched.id)
        assert not store.exists("missing")

    def test_corrupt_record(self, branched):
        """Test that a record with an unknown active leaf raises PersistenceError."""
        store = InMemoryConversationStore()
        store.save(branched)
        store._records[branched.id]["active_leaf_id"] = "deadbeef"

        with pytest.raises(PersistenceError):
            store.load(branched.id)


class TestJsonFileStore:
    """Tests for JsonFileConversationStore."""

    def test_round_trip(self, tmp_path, branched):
        """Test that a JSON file reproduces the tree."""
        store = JsonFileConversationStore(tmp_path)
        store.save(branched)

        loaded = store.load(branched.id)

        assert_same_tree(loaded, branched)

    def test_file_layout(self, tmp_path, branched):
        """Test that one document per conversation is written."""
        store = JsonFileConversationStore(tmp_path / "nested")
        store.save(branched)

        path = tmp_path / "nested" / f"{branched.id}.json"
        data = json.loads(path.read_text())
        assert data["active_leaf_id"] == branched.active_leaf_id
        assert len(data["nodes"]) == len(branched.nodes)
        assert list(path.parent.glob("*.tmp")) == []

    def test_overwrite(self, tmp_path, branched):
        """Test that saving again replaces the document."""
        store = JsonFileConversationStore(tmp_path)
        store.save(branched)
        BranchNavigator(branched.nodes).select_branch(
            branched, branched.active_leaf_id, 1
        )
        store.save(branched)

        assert store.load(branched.id).active_leaf_id == branched.active_leaf_id

    def test_list_ids(self, tmp_path):
        """Test that stored ids are listed."""
        store = JsonFileConversationStore(tmp_path)
        first, second = new_conversation(), new_conversation()
        store.save(first)
        store.save(second)

        assert store.list_ids() == sorted([first.id, second.id])

    def test_list_ids_missing_directory(self, tmp_path):
        """Test that a missing directory lists nothing."""
        assert JsonFileConversationStore(tmp_path / "absent").list_ids() == []

    def test_not_found(self, tmp_path):
        """Test that a missing file raises ConversationNotFoundError."""
        with pytest.raises(ConversationNotFoundError):
            JsonFileConversationStore(tmp_path).load("missing")

    def test_invalid_json(self, tmp_path):
        """Test that malformed files raise PersistenceError."""
        (tmp_path / "broken.json").write_text("{not json")

        with pytest.raises(PersistenceError):
            JsonFileConversationStore(tmp_path).load("broken")

    def test_corrupt_tree(self, tmp_path, branched):
        """Test that a dangling parent in the file raises PersistenceError."""
        data = branched.to_dict()
        data["nodes"][-1]["parent_id"] = "missing"
        (tmp_path / f"{branched.id}.json").write_text(json.dumps(data))

        with pytest.raises(PersistenceError) as exc_info:
            JsonFileConversationStore(tmp_path).load(branched.id)

        assert not isinstance(exc_info.value, ConversationNotFoundError)

    @pytest.mark.parametrize("active_leaf_id", ["deadbeef", None])
    def test_invalid_active_leaf(self, tmp_path, branched, active_leaf_id):
        """Test that the active leaf must name a stored node."""
        data = branched.to_dict()
        data["active_leaf_id"] = active_leaf_id
        (tmp_path / f"{branched.id}.json").write_text(json.dumps(data))

        with pytest.raises(PersistenceError):
            JsonFileConversationStore(tmp_path).load(branched.id)

    def test_empty_conversation_without_leaf(self, tmp_path):
        """Test that an empty tree loads with no active leaf."""
        store = JsonFileConversationStore(tmp_path)
        conversation = new_conversation()
        store.save(conversation)

        assert store.load(conversation.id).active_leaf_id is None

    def test_branch_index_gap(self, tmp_path, branched):
        """Test that sibling numbering with a gap raises PersistenceError."""
        data = branched.to_dict()
        child = next(n for n in data["nodes"] if n["parent_id"] is not None)
        child["branch_index"] = 5
        (tmp_path / f"{branched.id}.json").write_text(json.dumps(data))

        with pytest.raises(PersistenceError) as exc_info:
            JsonFileConversationStore(tmp_path).load(branched.id)

        assert "branch index 5" in str(exc_info.value)

    def test_failed_save_removes_temp_file(self, tmp_path, monkeypatch, branched):
        """Test that a failed rename leaves no partial files behind."""

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("chatfork.storage.json_store.os.replace", failing_replace)

        with pytest.raises(PersistenceError, match="disk full"):
            JsonFileConversationStore(tmp_path).save(branched)

        assert list(tmp_path.iterdir()) == []

    def test_rejects_path_like_ids(self, tmp_path):
        """Test that ids cannot escape the store directory."""
        with pytest.raises(PersistenceError):
            JsonFileConversationStore(tmp_path).load("../etc/passwd")


class TestSqlRepository:
    """Tests for SqlConversationRepository."""

    def test_round_trip(self, db_session, branched):
        """Test that rows reproduce the tree."""
        repo = SqlConversationRepository(db_session)
        repo.save(branched)
        db_session.expire_all()

        loaded = repo.load(branched.id)

        assert_same_tree(loaded, branched)

    def test_rows_written(self, db_session, branched):
        """Test one conversation row and one row per node."""
        SqlConversationRepository(db_session).save(branched)

        assert db_session.query(ConversationRecord).count() == 1
        assert db_session.query(MessageNodeRecord).count() == len(branched.nodes)

    def test_incremental_save(self, db_session, branched, seeded):
        """Test that re-saving inserts new nodes and refreshes navigation."""
        repo = SqlConversationRepository(db_session)
        repo.save(branched)

        reply = branched.add_node(
            MessageNode(role=MessageRole.USER, content="and now?", parent_id=seeded.b.id)
        )
        BranchNavigator(branched.nodes).activate(branched, reply.id)
        BranchNavigator(branched.nodes).select_branch(branched, seeded.a.id, 1)
        repo.save(branched)
        db_session.expire_all()

        loaded = repo.load(branched.id)

        assert_same_tree(loaded, branched)
        assert loaded.nodes.get(seeded.root.id).last_active_child_id != seeded.a.id

    def test_not_found(self, db_session):
        """Test that unknown ids raise ConversationNotFoundError."""
        with pytest.raises(ConversationNotFoundError):
            SqlConversationRepository(db_session).load("missing")

    def test_list_ids_most_recent_first(self, db_session):
        """Test ordering by update time."""
        repo = SqlConversationRepository(db_session)
        older, newer = new_conversation(), new_conversation()
        repo.save(older)
        newer.touch()
        repo.save(newer)

        assert repo.list_ids() == [newer.id, older.id]

    def test_unknown_active_leaf(self, db_session, branched):
        """Test that an active leaf outside the node rows is rejected."""
        repo = SqlConversationRepository(db_session)
        repo.save(branched)
        db_session.get(ConversationRecord, branched.id).active_leaf_id = "deadbeef"
        db_session.flush()
        db_session.expire_all()

        with pytest.raises(PersistenceError) as exc_info:
            repo.load(branched.id)

        assert "deadbeef" in str(exc_info.value)

    def test_conflicting_branch_index(self, db_session, branched, seeded):
        """Test that duplicate sibling numbering in the rows is rejected."""
        repo = SqlConversationRepository(db_session)
        repo.save(branched)
        db_session.get(MessageNodeRecord, (branched.id, seeded.b.id)).branch_index = 1
        db_session.flush()
        db_session.expire_all()

        with pytest.raises(PersistenceError):
            repo.load(branched.id)
