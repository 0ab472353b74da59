"""Persistent completion cache for the feed processor.

Records which Reader documents have already been classified so scheduled
runs do not re-examine them. Only documents with a Ghostreader summary are
recorded; unannotated documents are left out so the next run checks them
again. The cache is stored as JSON and written atomically to prevent
corruption if the script is interrupted mid-write.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from feedpromote import config

log = logging.getLogger(__name__)

STATE_PATH: Path = config.STATE_PATH
LOCK_PATH = STATE_PATH.with_suffix(".lock")


def _empty() -> Dict[str, Any]:
    return {"processed": {}}


def _load_raw() -> Dict[str, Any]:
    """Read the cache file. Missing or malformed files load as an empty cache."""
    if not STATE_PATH.exists():
        return _empty()
    try:
        data = json.loads(STATE_PATH.read_text())
    except (OSError, ValueError) as e:
        log.debug("Ignoring unreadable cache at %s: %s", STATE_PATH, e)
        return _empty()
    if not isinstance(data, dict) or not isinstance(data.get("processed"), dict):
        log.debug("Ignoring cache at %s: unexpected shape", STATE_PATH)
        return _empty()
    return data


def _save_raw(data: Dict[str, Any]) -> None:
    """Write state atomically: write to temp file, then rename."""
    STATE_PATH.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=STATE_PATH.parent, prefix=".processed_", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp, STATE_PATH)
    except BaseException:
        os.unlink(tmp)
        raise


class State:
    """Completion cache: document id -> {"promoted": bool}.

    With load=False the cache starts empty and nothing on disk is read
    (used by --no-cache).
    """

    def __init__(self, load: bool = True) -> None:
        self._data = _load_raw() if load else _empty()

    def save(self) -> None:
        _save_raw(self._data)

    @property
    def processed(self) -> Dict[str, Dict[str, bool]]:
        return self._data["processed"]

    def has_document(self, document_id: str) -> bool:
        return str(document_id) in self.processed

    def mark_processed(self, document_id: str, promoted: bool) -> None:
        """Record a classified document. Existing entries are left as they are."""
        self.processed.setdefault(str(document_id), {"promoted": promoted})

    def __len__(self) -> int:
        return len(self.processed)


def _try_create_lock() -> bool:
    """Attempt to create the lock file. Returns True if successful."""
    try:
        fd = os.open(LOCK_PATH, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        os.write(fd, str(os.getpid()).encode())
        os.close(fd)
        return True
    except FileExistsError:
        return False


def acquire_lock() -> bool:
    """Try to acquire a file lock. Returns True if acquired, False if already held.

    If the lock is held by a dead process (stale lock), it is automatically
    removed and re-acquired.
    """
    LOCK_PATH.parent.mkdir(parents=True, exist_ok=True)
    if _try_create_lock():
        return True

    # Lock exists: check if the holding process is still alive
    try:
        pid = int(LOCK_PATH.read_text().strip())
        os.kill(pid, 0)  # signal 0: check existence only
    except PermissionError:
        # Alive, owned by another user
        return False
    except (ValueError, ProcessLookupError):
        log.warning("Removing stale lock (previous process died)")
        try:
            LOCK_PATH.unlink()
        except FileNotFoundError:
            pass
        return _try_create_lock()

    return False


def release_lock() -> None:
    """Release the file lock."""
    try:
        LOCK_PATH.unlink()
    except FileNotFoundError:
        pass
