import json

from fakes import BrokenStore
from recorder import ConversationRecorder


def test_record_writes_both_turns_and_event(store):
    recorder = ConversationRecorder(store)
    assert recorder.record("s1", "Hi", "Hello!", "en").result() is True
    recorder.shutdown()

    messages = store.get_recent_messages("s1")
    assert [(m["role"], m["content"]) for m in messages] == [("user", "Hi"), ("assistant", "Hello!")]

    conn = store.get_connection()
    row = conn.execute("SELECT session_id, event_type, event_data FROM chat_analytics").fetchone()
    conn.close()
    assert row["session_id"] == "s1"
    assert row["event_type"] == "conversation"
    assert json.loads(row["event_data"])["language"] == "en"


def test_missing_session_is_anonymous(store):
    recorder = ConversationRecorder(store)
    recorder.record(None, "Hi", "Hello!", "en").result()
    recorder.shutdown()
    assert len(store.get_recent_messages("anonymous")) == 2


def test_write_failure_is_contained():
    recorder = ConversationRecorder(BrokenStore())
    assert recorder.record("s1", "Hi", "Hello!", "en").result() is False
    recorder.shutdown()
