"""
Lock management for the record store.

Two layers guard every store file:

- In-process: a FIFO queue per key, guarded by a single Condition. Waiters
  are served strictly in arrival order and each waits at most the configured
  timeout.
- Cross-process (optional): a sibling lock file created with O_EXCL. A lock
  file older than the staleness threshold is treated as abandoned by a dead
  process and reclaimed. Reclaiming renames the file aside first and
  only discards it if it is still the file that was judged stale.

Acquisition is always bounded. Exceeding the timeout raises LockTimeout; a
caller never blocks indefinitely.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import threading
import time
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterator, Optional, Tuple, TypeVar

from .errors import LockTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT = 5.0
DEFAULT_STALE_SECONDS = 30.0
POLL_INTERVAL = 0.02


def lock_file_for(path: Path) -> Path:
    """Sibling lock file for a store file (``prds.json`` -> ``prds.json.lock``)."""
    return path.with_name(path.name + ".lock")


class LockManager:
    """Per-key mutual exclusion, FIFO in-process, optionally cross-process.

    One LockManager is owned by the application's Workspace and shared by all
    stores, so every handler that touches the same store file queues on the
    same key.

    Args:
        timeout: Default bound on total acquisition time, in seconds.
        stale_after: Age in seconds after which a lock file is reclaimed.
        cross_process: Whether to also take the O_EXCL lock file.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        stale_after: float = DEFAULT_STALE_SECONDS,
        cross_process: bool = True,
    ):
        self.timeout = timeout
        self.stale_after = stale_after
        self.cross_process = cross_process
        self._cond = threading.Condition()
        self._queues: Dict[str, Deque[object]] = {}

    # -------------------------------------------------------------------------
    # In-process FIFO queue
    # -------------------------------------------------------------------------

    def _enter(self, key: str, deadline: float, wait: float) -> None:
        ticket = object()
        with self._cond:
            queue = self._queues.setdefault(key, deque())
            queue.append(ticket)
            while queue[0] is not ticket:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    queue.remove(ticket)
                    if not queue:
                        del self._queues[key]
                    self._cond.notify_all()
                    raise LockTimeout(key, wait)
                self._cond.wait(remaining)

    def _leave(self, key: str) -> None:
        with self._cond:
            queue = self._queues[key]
            queue.popleft()
            if not queue:
                del self._queues[key]
            self._cond.notify_all()

    def waiting(self, key: str) -> int:
        """Number of holders plus waiters currently queued on ``key``."""
        with self._cond:
            return len(self._queues.get(key, ()))

    # -------------------------------------------------------------------------
    # Cross-process lock file
    # -------------------------------------------------------------------------

    def _stale_snapshot(self, lock_file: Path) -> Optional[Tuple[int, bytes]]:
        """(inode, raw bytes) of ``lock_file`` if it is stale, else None."""
        try:
            raw = lock_file.read_bytes()
            inode = os.stat(lock_file).st_ino
        except FileNotFoundError:
            return None
        created: Optional[float] = None
        try:
            meta = json.loads(raw.decode("utf-8"))
            if isinstance(meta, dict) and isinstance(meta.get("created_epoch"), (int, float)):
                created = float(meta["created_epoch"])
        except ValueError:
            pass
        if created is None:
            # Half-written or foreign lock file: fall back to its mtime
            try:
                created = lock_file.stat().st_mtime
            except FileNotFoundError:
                return None
        if (time.time() - created) <= self.stale_after:
            return None
        return inode, raw

    def _reclaim(self, lock_file: Path, observed: Tuple[int, bytes], token: str) -> bool:
        """Remove a stale lock file, but only the one that was judged stale.

        The file is first renamed aside, which only one contender can do.
        If what was moved is no longer the file observed as stale (another
        process reclaimed it and took a fresh lock in between), it is put
        back untouched.

        Returns:
            True if the stale lock file was removed by this call.
        """
        aside = lock_file.with_name(f"{lock_file.name}.{token}.stale")
        try:
            os.rename(lock_file, aside)
        except FileNotFoundError:
            return False
        try:
            moved = (os.stat(aside).st_ino, aside.read_bytes())
            if moved == observed:
                logger.warning("Reclaimed stale lock file %s", lock_file)
                return True
            try:
                os.link(aside, lock_file)
            except FileExistsError:
                logger.warning("Lock file %s was replaced while restoring a fresh lock", lock_file)
            return False
        finally:
            try:
                aside.unlink()
            except FileNotFoundError:
                pass

    def _acquire_file(self, lock_file: Path, key: str, deadline: float, wait: float) -> str:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        token = f"{os.getpid()}-{secrets.token_hex(6)}"

        while True:
            try:
                fd = os.open(lock_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            except FileExistsError:
                observed = self._stale_snapshot(lock_file)
                if observed is not None:
                    self._reclaim(lock_file, observed, token)
                    continue
                if time.monotonic() >= deadline:
                    raise LockTimeout(key, wait)
                time.sleep(POLL_INTERVAL)
                continue

            payload = {"pid": os.getpid(), "token": token, "created_epoch": time.time()}
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            return token

    def _release_file(self, lock_file: Path, token: str) -> None:
        try:
            meta = json.loads(lock_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Lock file %s vanished before release", lock_file)
            return
        except (OSError, ValueError):
            meta = {}
        if meta.get("token") != token:
            # Reclaimed as stale by someone else; their lock now
            logger.warning("Lock file %s no longer owned by this holder", lock_file)
            return
        try:
            lock_file.unlink()
        except FileNotFoundError:
            pass

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @contextmanager
    def locked(
        self,
        key: str,
        lock_file: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Resource key; store files use their absolute path.
            lock_file: Cross-process lock file. Ignored when cross-process
                locking is disabled.
            timeout: Override the default acquisition bound.

        Raises:
            LockTimeout: If the lock is not acquired in time.
        """
        wait = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + wait
        self._enter(key, deadline, wait)

        token: Optional[str] = None
        try:
            if self.cross_process and lock_file is not None:
                token = self._acquire_file(lock_file, key, deadline, wait)
        except BaseException:
            self._leave(key)
            raise

        try:
            yield
        finally:
            try:
                if token is not None:
                    self._release_file(lock_file, token)
            finally:
                self._leave(key)

    def with_lock(
        self,
        key: str,
        fn: Callable[..., T],
        *args: Any,
        lock_file: Optional[Path] = None,
        **kwargs: Any,
    ) -> T:
        """Run ``fn(*args, **kwargs)`` while holding the lock for ``key``."""
        with self.locked(key, lock_file=lock_file):
            return fn(*args, **kwargs)
