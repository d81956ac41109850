"""
AIOB Session Store - AICF record files for orchestration sessions.

Each session writes to ``<session_dir>/<YYYY-MM-DD>_<session_id>.aicf``.
A second write for the same date and session appends a blank line and a
new record, so a file is a sequence of records rather than a single one.
"""

import logging
import re
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from aiob.aicf.codec import ContextCodec
from aiob.aicf.models import MemoryRecord

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r"[A-Za-z0-9_.-]+")
RECORD_SUFFIX = ".aicf"


def validate_session_id(session_id: str) -> str:
    """Return ``session_id`` if it is safe to use in a file name."""
    if not SESSION_ID_RE.fullmatch(session_id) or session_id.strip(".") == "":
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id


class SessionStore:
    """
    Store for AICF session files.

    The SessionStore handles:
    - Creating a record file on the first write of a day
    - Appending further records for the same session and day
    - Reading a file back as a list of records
    - Listing session files, most recent first

    Writes to the same path are serialized; different sessions never share
    a lock. A path's lock is dropped once no writer holds or waits on it.

    Example:
        >>> store = SessionStore(Path(".aicf/recent"))
        >>> path = store.write(record)
        >>> store.read_path(path)
        [MemoryRecord(...)]
    """

    def __init__(self, session_dir: Optional[Path] = None, codec: Optional[ContextCodec] = None):
        """
        Initialize the SessionStore.

        Args:
            session_dir: Directory for record files. Defaults to ./.aicf/recent.
            codec: Codec used to encode and decode records.
        """
        if session_dir:
            self.session_dir = Path(session_dir)
        else:
            self.session_dir = Path.cwd() / ".aicf" / "recent"

        self.codec = codec or ContextCodec()
        # path -> [lock, writers holding or waiting]
        self._locks: Dict[Path, list] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, session_id: str, when: Optional[datetime] = None) -> Path:
        """Return the record file path for a session on the UTC date of ``when``."""
        when = when or datetime.now(timezone.utc)
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc)
        validate_session_id(session_id)
        return self.session_dir / f"{when.date().isoformat()}_{session_id}{RECORD_SUFFIX}"

    def write(self, record: MemoryRecord, when: Optional[datetime] = None) -> Path:
        """
        Persist a record, creating the file or appending to it.

        Args:
            record: The record to write. Its conversation id names the file.
            when: Write time; its UTC date names the file. Defaults to now.

        Returns:
            Path to the record file.
        """
        path = self.path_for(record.conversation_id, when)
        content = self.codec.encode(record)

        with self._locked(path):
            self.session_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                with open(path, "a", encoding="utf-8", newline="") as f:
                    f.write("\n\n" + content)
                logger.debug("Appended record to %s", path)
            else:
                with open(path, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                logger.debug("Created record file %s", path)

        return path

    def read(self, session_id: str, when: Optional[datetime] = None) -> List[MemoryRecord]:
        """
        Load every record written for a session on a given date.

        Returns:
            The records in write order, or an empty list if no file exists.
        """
        path = self.path_for(session_id, when)
        if not path.exists():
            return []
        return self.read_path(path)

    def read_path(self, path: Path) -> List[MemoryRecord]:
        """
        Load every record from a record file.

        Raises:
            FormatError: If any record in the file is malformed.
        """
        with open(path, encoding="utf-8", newline="") as f:
            return self.codec.decode_many(f.read())

    def list_files(self, session_id: Optional[str] = None) -> List[Path]:
        """
        List record files, most recently modified first.

        Args:
            session_id: Only list files for this session.
        """
        if not self.session_dir.exists():
            return []

        files = list(self.session_dir.glob(f"*{RECORD_SUFFIX}"))
        if session_id:
            # names are <YYYY-MM-DD>_<session_id>.aicf
            files = [p for p in files if p.name[11 : -len(RECORD_SUFFIX)] == session_id]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return files

    def load_latest(self, session_id: str) -> Optional[MemoryRecord]:
        """
        Load the most recent record written for a session.

        Returns:
            The last record of the newest file, or None if there is none.
        """
        validate_session_id(session_id)
        for path in self.list_files(session_id):
            records = self.read_path(path)
            if records:
                return records[-1]
        return None

    @contextmanager
    def _locked(self, path: Path) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(path, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[path]
