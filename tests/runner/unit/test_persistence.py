"""
Unit tests for TranscriptStore
"""

import os
import tempfile

import pytest

from flightplan.runner.persistence import TranscriptStore


@pytest.fixture
def temp_db():
    """Create a temporary database for testing"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield f"sqlite:///{path}"
    os.unlink(path)


@pytest.fixture
def store(temp_db):
    """Create a TranscriptStore with temp database"""
    store = TranscriptStore(temp_db)
    yield store
    store.close()


def test_create_and_find_latest(store):
    """Test transcript creation and lookup by mission"""
    assert store.latest_session_id("mission-1") is None

    session_id = store.create_session("mission-1", "anthropic/claude-sonnet-4-5", session_id="t-1")

    assert session_id == "t-1"
    assert store.latest_session_id("mission-1") == "t-1"
    assert store.latest_session_id("mission-2") is None


def test_append_and_load_messages(store):
    """Test message order and content survive a round trip"""
    session_id = store.create_session("mission-1", "m")
    store.append_messages(session_id, [{"role": "user", "content": "[Ada]: add a cart"}])
    store.append_messages(
        session_id,
        [
            {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": "bash", "input": {"command": "ls"}}]},
            {"role": "user", "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "README.md"}]},
        ],
    )

    messages = store.load_messages(session_id)

    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[0]["content"] == "[Ada]: add a cart"
    assert messages[1]["content"][0]["input"] == {"command": "ls"}


def test_replace_messages(store):
    """Test compaction replaces the whole transcript"""
    session_id = store.create_session("mission-1", "m")
    store.append_messages(session_id, [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}])

    store.replace_messages(session_id, [{"role": "user", "content": "summary"}])
    store.append_messages(session_id, [{"role": "assistant", "content": "ok"}])

    assert store.load_messages(session_id) == [
        {"role": "user", "content": "summary"},
        {"role": "assistant", "content": "ok"},
    ]


def test_usage_accumulates(store):
    session_id = store.create_session("mission-1", "m")

    store.record_usage(session_id, 100, 20)
    store.record_usage(session_id, 50, 5)

    assert store.get_usage(session_id) == {"input_tokens": 150, "output_tokens": 25}
    assert store.get_usage("missing") == {"input_tokens": 0, "output_tokens": 0}


def test_for_directory(tmp_path):
    """Test the store creates its database inside the session directory"""
    session_dir = tmp_path / "sessions" / "mission-1"
    store = TranscriptStore.for_directory(str(session_dir))
    try:
        store.create_session("mission-1", "m")
    finally:
        store.close()

    assert (session_dir / "transcripts.db").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
