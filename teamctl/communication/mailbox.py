"""
File-backed mailboxes shared between the controller and teammate processes.

Each ``(team, agent)`` pair owns one JSON array at
``teams/<team>/inboxes/<agent>.json``. Teammates are separate OS processes
that append to each other's mailboxes directly, so every read-modify-write
runs under an exclusive ``flock`` on a sibling ``.lock`` file and lands on
disk through write-to-temp + ``os.replace``. The lock lives on its own file
because the rename swaps the mailbox inode and a lock held on the old inode
would no longer exclude anyone.

Key Features:
- Bounded lock retry with exponential backoff (raises MailboxLockTimeout)
- Readers never observe a partially written array
- Corrupt mailboxes are backed up beside the mailbox file and reset to an
  empty array
"""

import fcntl
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Optional

from teamctl.communication.message_types import InboxMessage, PollEvent, now_ms, parse_structured
from teamctl.core import paths
from teamctl.core.errors import MailboxLockTimeout, StorageError

logger = logging.getLogger(__name__)

LOCK_RETRIES = 5
LOCK_INITIAL_BACKOFF = 0.05
LOCK_MAX_BACKOFF = 0.5
MAX_MAILBOX_BYTES = 5_000_000


def atomic_write_json(path: Path, payload) -> None:
    """Serialize ``payload`` to ``<path>.tmp`` then rename it over ``path``."""
    tmp = paths.temp_path_for(path)
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


@contextmanager
def exclusive_lock(lock_path: Path, retries: int = LOCK_RETRIES,
                   initial_backoff: float = LOCK_INITIAL_BACKOFF,
                   max_backoff: float = LOCK_MAX_BACKOFF) -> Iterator[None]:
    """Hold an exclusive advisory lock on ``lock_path``.

    Tries a non-blocking ``flock`` up to ``retries`` times, sleeping between
    attempts with a doubling delay capped at ``max_backoff``.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        delay = initial_backoff
        for attempt in range(retries):
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if attempt == retries - 1:
                    raise MailboxLockTimeout(
                        f"lock: could not lock {lock_path.name} after {retries} attempts"
                    )
                time.sleep(delay)
                delay = min(delay * 2, max_backoff)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


class MailboxStore:
    """
    Per-agent mailbox files for one base directory.

    All methods block (file locks, disk I/O); async callers run them in an
    executor.
    """

    def __init__(self, base_dir: Optional[paths.PathLike] = None,
                 lock_retries: int = LOCK_RETRIES,
                 initial_backoff: float = LOCK_INITIAL_BACKOFF,
                 max_backoff: float = LOCK_MAX_BACKOFF):
        self.base_dir = paths.get_base_dir(base_dir)
        self.lock_retries = lock_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff

    def path(self, team_name: str, agent_name: str) -> Path:
        return paths.inbox_path(team_name, agent_name, self.base_dir)

    def ensure(self, team_name: str, agent_name: str) -> Path:
        """Create an empty mailbox if it does not exist yet."""
        path = self.path(team_name, agent_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                with self._locked(path):
                    if not path.exists():
                        atomic_write_json(path, [])
        except OSError as e:
            raise StorageError(f"ensure inbox file: {e}") from e
        return path

    def append(self, team_name: str, agent_name: str, message: InboxMessage) -> None:
        """Append one message under the mailbox lock."""
        path = self.ensure(team_name, agent_name)
        with self._locked(path):
            messages = self._load(path)
            messages.append(message)
            self._store(path, messages)

    def drain_unread(self, team_name: str, agent_name: str) -> List[PollEvent]:
        """
        Return every unread message and mark it read.

        Messages come back in file order. A drained message is never
        returned again by this method.
        """
        path = self.path(team_name, agent_name)
        if not path.exists():
            return []

        with self._locked(path):
            messages = self._load(path)
            events = []
            for message in messages:
                if not message.read:
                    events.append(PollEvent(raw=replace(message),
                                            parsed=parse_structured(message.text)))
                    message.read = True
            if events:
                self._store(path, messages)
        return events

    def read_all(self, team_name: str, agent_name: str) -> List[InboxMessage]:
        """Snapshot of a mailbox without changing read flags."""
        path = self.path(team_name, agent_name)
        if not path.exists():
            return []
        with self._locked(path):
            return self._load(path)

    @contextmanager
    def _locked(self, path: Path) -> Iterator[None]:
        with exclusive_lock(paths.lock_path_for(path), self.lock_retries,
                            self.initial_backoff, self.max_backoff):
            yield

    def _load(self, path: Path) -> List[InboxMessage]:
        try:
            with open(path, "rb") as f:
                raw = f.read(MAX_MAILBOX_BYTES)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"read inbox: {e}") from e

        if not raw.strip():
            return []
        try:
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, list):
                raise ValueError("mailbox is not a JSON array")
            return [InboxMessage.from_dict(item) for item in data]
        except ValueError as e:
            # Caller holds the mailbox lock.
            self._backup_corrupt(path, raw, e)
            self._store(path, [])
            return []

    def _store(self, path: Path, messages: List[InboxMessage]) -> None:
        try:
            atomic_write_json(path, [m.to_dict() for m in messages])
        except OSError as e:
            raise StorageError(f"write inbox: {e}") from e

    def _backup_corrupt(self, path: Path, raw: bytes, error: Exception) -> None:
        backup = path.with_name(f"{path.name}.corrupt-{now_ms()}")
        try:
            backup.write_bytes(raw)
        except OSError as e:
            logger.error(f"Could not back up corrupt inbox {path}: {e}")
        logger.warning(f"Inbox JSON parse failed for {path} (backed up to {backup}): {error}")
