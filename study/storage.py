"""Progress store contract and a JSONL-backed implementation."""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from study.errors import ConcurrentModificationError, StoreUnavailableError
from study.models import MemoryState, ReviewEvent

logger = logging.getLogger("sakura.store")

LOCK_TIMEOUT_S = 5.0
STALE_LOCK_S = 30.0


class ProgressStore(ABC):
    """
    Durable per-user, per-card persistence of MemoryState.

    Writes use optimistic concurrency: put() succeeds only when the stored
    version equals expected_version (0 = no record may exist yet) and
    returns the state stamped with the new version. Reads may lag a
    concurrent write; a card graded a moment ago can still show as due
    in a query issued at the same time.
    """

    @abstractmethod
    def get(self, user_id: str, card_id: str) -> Optional[MemoryState]:
        ...

    @abstractmethod
    def put(self, state: MemoryState, expected_version: int) -> MemoryState:
        """Conditional write. Raises ConcurrentModificationError on a version mismatch."""
        ...

    @abstractmethod
    def query_by_user(self, user_id: str) -> List[MemoryState]:
        ...

    @abstractmethod
    def append_review(self, event: ReviewEvent) -> None:
        ...

    @abstractmethod
    def recent_reviews(self, user_id: str, limit: int = 200) -> List[ReviewEvent]:
        """Most recent review events for a user, oldest first."""
        ...

    def record_grade(self, state: MemoryState, expected_version: int, event: ReviewEvent) -> MemoryState:
        """
        Conditional write of a graded state plus its review-log entry.

        Once put() succeeds the grade is durable and is returned even if
        the log append fails; that failure is logged, never re-raised,
        so a retry cannot apply the same grade twice. Stores that can
        write both in one transaction override this.
        """
        stored = self.put(state, expected_version)
        try:
            self.append_review(event)
        except StoreUnavailableError:
            logger.exception(
                "Review log append failed after grade was stored: user=%s card=%s version=%d",
                state.user_id, state.card_id, stored.version,
            )
        return stored


class JsonlProgressStore(ProgressStore):
    """
    JSONL-backed progress store.

    Keeps the entire file in memory (fine for <100k records) and reloads
    it when another writer has replaced it. Writes are atomic: the file is
    rewritten to a temp path and renamed. The read-check-write cycle of
    put() runs under a lockfile next to the data file, so several
    processes may share one path. The review log is append-only in a
    sibling file.
    """

    def __init__(self, db_path, review_log_path=None):
        self.db_path = Path(db_path)
        self.review_log_path = (
            Path(review_log_path) if review_log_path
            else self.db_path.with_name(self.db_path.stem + '_reviews.jsonl')
        )
        self.lock_path = self.db_path.with_name(self.db_path.name + '.lock')
        self._states: Dict[Tuple[str, str], MemoryState] = {}
        self._signature: Optional[tuple] = None
        self._lock = threading.Lock()
        self._load()

    def _file_signature(self) -> Optional[tuple]:
        try:
            st = os.stat(self.db_path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(f"Cannot stat progress file {self.db_path}: {e}") from e
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _load(self) -> None:
        signature = self._file_signature()
        states: Dict[Tuple[str, str], MemoryState] = {}
        if signature is not None:
            try:
                with open(self.db_path, 'r', encoding='utf-8') as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        state = MemoryState.from_dict(json.loads(line))
                        states[state.key] = state
            except FileNotFoundError:
                signature = None
            except OSError as e:
                raise StoreUnavailableError(f"Cannot read progress file {self.db_path}: {e}") from e
        self._states = states
        self._signature = signature

    def _refresh(self) -> None:
        """Reload when the file on disk is not the one last read or written."""
        if self._file_signature() != self._signature:
            with self._lock:
                self._load()

    @contextmanager
    def _file_lock(self):
        """Exclusive lockfile (O_EXCL) shared by every store on this path."""
        deadline = time.monotonic() + LOCK_TIMEOUT_S
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create {self.lock_path.parent}: {e}") from e
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                self._break_stale_lock()
                if time.monotonic() >= deadline:
                    raise StoreUnavailableError(f"Timed out waiting for lock {self.lock_path}")
                time.sleep(0.01)
            except OSError as e:
                raise StoreUnavailableError(f"Cannot lock {self.lock_path}: {e}") from e
        try:
            os.write(fd, str(os.getpid()).encode('ascii'))
            os.close(fd)
            yield
        finally:
            try:
                os.unlink(self.lock_path)
            except FileNotFoundError:
                pass

    def _break_stale_lock(self) -> None:
        # a crashed writer leaves its lockfile behind
        try:
            age = time.time() - os.stat(self.lock_path).st_mtime
        except FileNotFoundError:
            return
        if age > STALE_LOCK_S:
            logger.warning("Removing stale lock %s (%.0fs old)", self.lock_path, age)
            try:
                os.unlink(self.lock_path)
            except FileNotFoundError:
                pass

    def _save(self) -> None:
        tmp = self.db_path.with_suffix(self.db_path.suffix + '.tmp')
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, 'w', encoding='utf-8') as f:
                for state in self._states.values():
                    f.write(json.dumps(state.to_dict(), ensure_ascii=False) + '\n')
            tmp.replace(self.db_path)
        except OSError as e:
            logger.exception("Progress write failed: %s", self.db_path)
            raise StoreUnavailableError(f"Cannot write progress file {self.db_path}: {e}") from e
        self._signature = self._file_signature()

    def get(self, user_id: str, card_id: str) -> Optional[MemoryState]:
        self._refresh()
        return self._states.get((user_id, card_id))

    def put(self, state: MemoryState, expected_version: int) -> MemoryState:
        with self._lock, self._file_lock():
            # the version check runs against disk, not our cached copy
            self._load()
            current = self._states.get(state.key)
            actual = current.version if current is not None else 0
            if actual != expected_version:
                raise ConcurrentModificationError(
                    state.user_id, state.card_id, expected_version, actual,
                )
            stored = state.with_version(expected_version + 1)
            self._states[state.key] = stored
            try:
                self._save()
            except StoreUnavailableError:
                # keep memory consistent with disk
                if current is None:
                    del self._states[state.key]
                else:
                    self._states[state.key] = current
                raise
            return stored

    def query_by_user(self, user_id: str) -> List[MemoryState]:
        self._refresh()
        return [s for (uid, _), s in list(self._states.items()) if uid == user_id]

    def append_review(self, event: ReviewEvent) -> None:
        try:
            self.review_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.review_log_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event.to_dict(), ensure_ascii=False) + '\n')
        except OSError as e:
            raise StoreUnavailableError(f"Cannot append review log {self.review_log_path}: {e}") from e

    def recent_reviews(self, user_id: str, limit: int = 200) -> List[ReviewEvent]:
        events: List[ReviewEvent] = []
        if not self.review_log_path.exists():
            return events
        try:
            with open(self.review_log_path, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    if data.get('user_id') == user_id:
                        events.append(ReviewEvent.from_dict(data))
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read review log {self.review_log_path}: {e}") from e
        events.sort(key=lambda e: e.reviewed_at)
        return events[-limit:] if limit > 0 else []

    def all_states(self) -> List[MemoryState]:
        self._refresh()
        return list(self._states.values())

    def count(self) -> int:
        self._refresh()
        return len(self._states)
