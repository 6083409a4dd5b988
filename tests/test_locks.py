"""Unit tests for the per-key lock."""

import threading

from chatbot.core.locks import KeyedLock


def test_entry_dropped_after_release():
    locks = KeyedLock()

    with locks.hold("alice"):
        assert len(locks) == 1

    assert len(locks) == 0


def test_entries_dropped_after_contention():
    locks = KeyedLock()
    counter = {"value": 0}

    def worker(key):
        for _ in range(200):
            with locks.hold(key):
                counter["value"] += 1

    threads = [threading.Thread(target=worker, args=(f"user-{i % 3}",)) for i in range(9)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter["value"] == 1800
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLock()
    entered = threading.Event()

    def other():
        with locks.hold("bob"):
            entered.set()

    with locks.hold("alice"):
        thread = threading.Thread(target=other)
        thread.start()
        assert entered.wait(timeout=2)
    thread.join()
