import threading

from okr_agent.domain.models import Message
from okr_agent.infrastructure.storage.memory_store import InMemoryConversationStore


def test_concurrent_get_or_create_returns_one_instance():
    store = InMemoryConversationStore()
    barrier = threading.Barrier(16)
    seen = []
    seen_lock = threading.Lock()

    def worker():
        barrier.wait()
        history = store.get_or_create("c1")
        with seen_lock:
            seen.append(history)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 16
    assert all(h is seen[0] for h in seen)
    assert len(store) == 1


def test_empty_id_gives_unregistered_history():
    store = InMemoryConversationStore()
    first = store.get_or_create(None)
    second = store.get_or_create("")
    assert first is not second
    assert len(store) == 0


def test_reset_clears_but_keeps_identity():
    store = InMemoryConversationStore()
    history = store.get_or_create("c1")
    history.add_message(Message.from_user("hello"))
    store.reset("c1")
    assert store.get_or_create("c1") is history
    assert len(history) == 0

    # 不存在的会话与空 ID 只记录告警
    store.reset("missing")
    store.reset(None)
    assert "missing" not in store


def test_remove():
    store = InMemoryConversationStore()
    store.get_or_create("c1")
    store.remove("c1")
    store.remove("c1")
    assert "c1" not in store
    assert store.list_all() == {}


def test_list_by_participant_is_case_insensitive():
    store = InMemoryConversationStore()
    store.get_or_create("c1").add_message(Message.from_user("hi", UserId="User-42"))
    store.get_or_create("c2").add_message(Message.from_user("hi", UserId="someone-else"))
    store.get_or_create("c3").add_message(Message.from_assistant("hi", UserId="user-42"))

    found = store.list_by_participant("USER-42")
    assert list(found) == ["c1"]
    assert found["c1"] is store.get_or_create("c1")
    assert store.list_by_participant("") == {}
    assert store.list_by_participant(None) == {}


def test_list_all_is_a_snapshot():
    store = InMemoryConversationStore()
    store.get_or_create("c1")
    snapshot = store.list_all()
    store.get_or_create("c2")
    assert list(snapshot) == ["c1"]
