"""Tests for per-key FIFO locking and cross-process lock files."""

import json
import os
import threading
import time

import pytest

from workboard.runtime.errors import LockTimeout
from workboard.runtime.locking import LockManager, lock_file_for


class TestInProcessLocking:
    def test_serializes_holders(self):
        locks = LockManager(timeout=2.0, cross_process=False)
        active = []
        overlaps = []

        def worker():
            with locks.locked("k"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert locks.waiting("k") == 0

    def test_waiters_are_served_in_arrival_order(self):
        locks = LockManager(timeout=5.0, cross_process=False)
        order = []
        release = threading.Event()

        def holder():
            with locks.locked("k"):
                release.wait(2.0)

        def waiter(n):
            with locks.locked("k"):
                order.append(n)

        first = threading.Thread(target=holder)
        first.start()
        while locks.waiting("k") < 1:
            time.sleep(0.005)

        waiters = []
        for n in range(5):
            t = threading.Thread(target=waiter, args=(n,))
            t.start()
            waiters.append(t)
            # Queue each waiter before starting the next
            while locks.waiting("k") < n + 2:
                time.sleep(0.005)

        release.set()
        first.join()
        for t in waiters:
            t.join()

        assert order == [0, 1, 2, 3, 4]

    def test_timeout_raises_and_leaves_queue_clean(self):
        locks = LockManager(timeout=0.1, cross_process=False)
        with locks.locked("k"):
            result = []

            def contender():
                try:
                    with locks.locked("k"):
                        result.append("acquired")
                except LockTimeout as e:
                    result.append(e)

            t = threading.Thread(target=contender)
            t.start()
            t.join()

        assert isinstance(result[0], LockTimeout)
        assert result[0].retryable is True
        assert result[0].timeout == 0.1
        assert locks.waiting("k") == 0

    def test_per_call_timeout_is_reported(self):
        locks = LockManager(timeout=5.0, cross_process=False)
        with locks.locked("k"):
            caught = []

            def contender():
                try:
                    with locks.locked("k", timeout=0.05):
                        pass
                except LockTimeout as e:
                    caught.append(e)

            t = threading.Thread(target=contender)
            t.start()
            t.join()
        assert caught[0].timeout == 0.05

    def test_different_keys_do_not_block(self):
        locks = LockManager(timeout=0.1, cross_process=False)
        with locks.locked("a"):
            with locks.locked("b"):
                pass

    def test_with_lock_returns_result(self):
        locks = LockManager(cross_process=False)
        assert locks.with_lock("k", lambda x, y=0: x + y, 2, y=3) == 5

    def test_exception_in_body_releases(self):
        locks = LockManager(timeout=0.1, cross_process=False)
        with pytest.raises(RuntimeError):
            with locks.locked("k"):
                raise RuntimeError("boom")
        with locks.locked("k"):
            pass


class TestLockFile:
    def test_lock_file_exists_only_while_held(self, tmp_path):
        locks = LockManager(timeout=1.0)
        lock_file = lock_file_for(tmp_path / "store.json")
        assert lock_file.name == "store.json.lock"

        with locks.locked("k", lock_file=lock_file):
            meta = json.loads(lock_file.read_text(encoding="utf-8"))
            assert meta["pid"] == os.getpid()
            assert "token" in meta
        assert not lock_file.exists()

    def test_foreign_fresh_lock_times_out(self, tmp_path):
        locks = LockManager(timeout=0.1, stale_after=30.0)
        lock_file = tmp_path / "store.json.lock"
        lock_file.write_text(
            json.dumps({"pid": 999999, "token": "other", "created_epoch": time.time()}),
            encoding="utf-8",
        )
        with pytest.raises(LockTimeout):
            with locks.locked("k", lock_file=lock_file):
                pass
        # The in-process queue is released even when the file lock fails
        assert locks.waiting("k") == 0
        assert lock_file.exists()

    def test_stale_lock_is_reclaimed(self, tmp_path):
        locks = LockManager(timeout=1.0, stale_after=5.0)
        lock_file = tmp_path / "store.json.lock"
        lock_file.write_text(
            json.dumps({"pid": 999999, "token": "dead", "created_epoch": time.time() - 60}),
            encoding="utf-8",
        )
        with locks.locked("k", lock_file=lock_file):
            assert json.loads(lock_file.read_text(encoding="utf-8"))["token"] != "dead"
        assert not lock_file.exists()

    def test_unreadable_stale_lock_uses_mtime(self, tmp_path):
        locks = LockManager(timeout=1.0, stale_after=5.0)
        lock_file = tmp_path / "store.json.lock"
        lock_file.write_text("not json", encoding="utf-8")
        old = time.time() - 60
        os.utime(lock_file, (old, old))
        with locks.locked("k", lock_file=lock_file):
            pass
        assert not lock_file.exists()

    def test_release_skips_lock_owned_by_someone_else(self, tmp_path):
        locks = LockManager(timeout=1.0)
        lock_file = tmp_path / "store.json.lock"
        with locks.locked("k", lock_file=lock_file):
            lock_file.write_text(
                json.dumps({"pid": 1, "token": "new-owner", "created_epoch": time.time()}),
                encoding="utf-8",
            )
        assert json.loads(lock_file.read_text(encoding="utf-8"))["token"] == "new-owner"

    def test_cross_process_disabled_ignores_lock_file(self, tmp_path):
        locks = LockManager(timeout=1.0, cross_process=False)
        lock_file = tmp_path / "store.json.lock"
        with locks.locked("k", lock_file=lock_file):
            assert not lock_file.exists()

    def test_reclaim_leaves_a_fresh_lock_in_place(self, tmp_path):
        # Two managers stand in for two processes that both saw the same stale file
        first = LockManager(timeout=1.0, stale_after=5.0)
        second = LockManager(timeout=1.0, stale_after=5.0)
        lock_file = tmp_path / "store.json.lock"
        lock_file.write_text(
            json.dumps({"pid": 999999, "token": "dead", "created_epoch": time.time() - 60}),
            encoding="utf-8",
        )
        observed = second._stale_snapshot(lock_file)
        assert observed is not None

        with first.locked("k", lock_file=lock_file):
            fresh = lock_file.read_text(encoding="utf-8")
            assert second._reclaim(lock_file, observed, "late") is False
            assert lock_file.read_text(encoding="utf-8") == fresh

        assert not lock_file.exists()
        assert list(tmp_path.iterdir()) == []

    def test_concurrent_stale_reclaim_grants_one_holder(self, tmp_path):
        lock_file = tmp_path / "store.json.lock"
        lock_file.write_text(
            json.dumps({"pid": 999999, "token": "dead", "created_epoch": time.time() - 60}),
            encoding="utf-8",
        )
        barrier = threading.Barrier(2, timeout=2.0)
        managers = [LockManager(timeout=3.0, stale_after=5.0) for _ in range(2)]

        def judge_together(manager):
            original = manager._stale_snapshot
            calls = []

            def wrapped(path):
                result = original(path)
                if not calls:
                    calls.append(path)
                    barrier.wait()
                return result

            manager._stale_snapshot = wrapped

        for manager in managers:
            judge_together(manager)

        guard = threading.Lock()
        active = []
        overlaps = []

        def worker(manager):
            with manager.locked("k", lock_file=lock_file):
                with guard:
                    active.append(1)
                    overlaps.append(len(active) > 1)
                time.sleep(0.05)
                with guard:
                    active.pop()

        threads = [threading.Thread(target=worker, args=(m,)) for m in managers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == [False, False]
        assert not lock_file.exists()
