import threading
import time
import unittest

from alicebot.core.errors import SessionNotFoundError
from alicebot.core.models import ChatTurn, Role
from alicebot.core.session_manager import InMemorySessionManager, trim_history


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def user(text):
    return ChatTurn(role=Role.USER, content=text)


def assistant(text):
    return ChatTurn(role=Role.ASSISTANT, content=text)


class TestInMemorySessionManager(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemorySessionManager(
            max_stored_turns=3,
            session_ttl_seconds=60,
            max_sessions=3,
            clock=self.clock,
        )

    def test_get_or_create_creates_single_system_turn(self):
        session = self.store.get_or_create("s1", "system prompt")
        self.assertEqual(len(session.turns), 1)
        self.assertEqual(session.turns[0], ChatTurn(role=Role.SYSTEM, content="system prompt"))

    def test_get_or_create_ignores_later_system_content(self):
        self.store.get_or_create("s1", "first")
        session = self.store.get_or_create("s1", "second")
        self.assertEqual(session.system_turn.content, "first")

    def test_callable_system_content_only_built_for_new_session(self):
        calls = []

        def build():
            calls.append(1)
            return "built"

        self.store.get_or_create("s1", build)
        self.store.get_or_create("s1", build)
        self.assertEqual(len(calls), 1)

    def test_append_requires_existing_session(self):
        with self.assertRaises(SessionNotFoundError):
            self.store.append("missing", user("hi"))

    def test_append_preserves_order(self):
        self.store.get_or_create("s1", "sys")
        self.store.append("s1", user("hi"))
        self.store.append("s1", assistant("hello"))
        roles = [t.role for t in self.store.snapshot("s1")]
        self.assertEqual(roles, [Role.SYSTEM, Role.USER, Role.ASSISTANT])

    def test_delete(self):
        self.store.get_or_create("s1", "sys")
        self.assertTrue(self.store.delete("s1"))
        self.assertFalse(self.store.delete("s1"))
        self.assertIsNone(self.store.get("s1"))

    def test_snapshot_is_a_copy(self):
        self.store.get_or_create("s1", "sys")
        snap = self.store.snapshot("s1")
        snap.append(user("sneaky"))
        self.assertEqual(len(self.store.snapshot("s1")), 1)
        self.assertEqual(self.store.snapshot("missing"), [])

    def test_pruning_keeps_system_turn(self):
        self.store.get_or_create("s1", "sys")
        for i in range(5):
            self.store.append("s1", user(f"u{i}"))
            self.store.append("s1", assistant(f"a{i}"))
        turns = self.store.snapshot("s1")
        self.assertEqual(turns[0].role, Role.SYSTEM)
        self.assertEqual(len(turns), 1 + 3 * 2)
        self.assertEqual(turns[1].content, "u2")
        self.assertEqual(turns[-1].content, "a4")

    def test_ttl_expires_idle_sessions(self):
        self.store.get_or_create("s1", "sys")
        self.clock.now += 61
        self.assertFalse(self.store.exists("s1"))
        self.assertEqual(len(self.store), 0)

    def test_access_refreshes_ttl(self):
        self.store.get_or_create("s1", "sys")
        self.clock.now += 50
        self.store.append("s1", user("hi"))
        self.clock.now += 50
        self.assertTrue(self.store.exists("s1"))

    def test_lru_eviction_when_full(self):
        for sid in ("s1", "s2", "s3"):
            self.store.get_or_create(sid, "sys")
            self.clock.now += 1
        # s1 usado recentemente: s2 vira o mais antigo
        self.store.get("s1")
        self.store.get_or_create("s4", "sys")
        self.assertEqual(len(self.store), 3)
        self.assertTrue(self.store.exists("s1"))
        self.assertFalse(self.store.exists("s2"))
        self.assertTrue(self.store.exists("s4"))

    def test_lru_skips_sessions_in_use(self):
        for sid in ("s1", "s2", "s3"):
            self.store.get_or_create(sid, "sys")
            self.clock.now += 1
        with self.store.lock("s1"):
            self.store.get_or_create("s4", "sys")
            self.assertTrue(self.store.exists("s1"))
            self.assertFalse(self.store.exists("s2"))

    def test_ttl_skips_sessions_in_use(self):
        self.store.get_or_create("s1", "sys")
        with self.store.lock("s1"):
            self.clock.now += 61
            self.assertTrue(self.store.exists("s1"))
        self.clock.now += 61
        self.assertFalse(self.store.exists("s1"))

    def test_append_to_ignores_replaced_session(self):
        old = self.store.get_or_create("s1", "old")
        self.store.delete("s1")
        self.store.get_or_create("s1", "new")

        self.assertIsNone(self.store.append_to(old, user("stale")))
        self.assertEqual(self.store.snapshot("s1"), [ChatTurn(Role.SYSTEM, "new")])

        current = self.store.get("s1")
        turns = self.store.append_to(current, user("hi"))
        self.assertEqual([t.content for t in turns], ["new", "hi"])

    def test_replace_system(self):
        self.store.get_or_create("s1", "old")
        self.store.append("s1", user("hi"))
        self.store.replace_system("s1", "new")
        turns = self.store.snapshot("s1")
        self.assertEqual(turns[0].content, "new")
        self.assertEqual(len(turns), 2)


def test_trim_history_drops_orphan_assistant():
    turns = [ChatTurn(Role.SYSTEM, "sys"), user("u0"), assistant("a0"), user("u1"), assistant("a1"), user("u2")]
    trimmed = trim_history(turns, 2)
    assert trimmed[0].role == Role.SYSTEM
    assert [t.content for t in trimmed[1:]] == ["u1", "a1", "u2"]


def test_session_lock_serialises_same_session():
    store = InMemorySessionManager()
    store.get_or_create("s1", "sys")
    inside = []
    overlap = []

    def worker(n):
        with store.lock("s1"):
            if inside:
                overlap.append(n)
            inside.append(n)
            time.sleep(0.01)
            store.append("s1", user(f"u{n}"))
            store.append("s1", assistant(f"a{n}"))
            inside.remove(n)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlap == []
    roles = [t.role for t in store.snapshot("s1")[1:]]
    assert roles == [Role.USER, Role.ASSISTANT] * 5


def test_locks_for_different_sessions_are_independent():
    store = InMemorySessionManager()
    with store.lock("a"):
        acquired = threading.Event()

        def other():
            with store.lock("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        t.join(timeout=1)
        assert acquired.is_set()


def test_session_lock_survives_delete():
    store = InMemorySessionManager()
    store.get_or_create("s1", "sys")
    acquired = threading.Event()

    def other():
        with store.lock("s1"):
            acquired.set()

    with store.lock("s1"):
        store.delete("s1")
        t = threading.Thread(target=other)
        t.start()
        # o segundo pedido compartilha o mesmo lock e continua esperando
        assert not acquired.wait(timeout=0.1)
    t.join(timeout=1)
    assert acquired.is_set()
