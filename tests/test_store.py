"""Tests for the session store."""

import os
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from aiob.aicf.codec import ContextCodec
from aiob.aicf.models import AIAction, MemoryRecord
from aiob.aicf.store import SessionStore, validate_session_id
from aiob.errors import FormatError

WHEN = datetime(2025, 10, 24, 9, 30, tzinfo=timezone.utc)


def make_record(session_id: str = "sess-1", details: str = "output") -> MemoryRecord:
    return MemoryRecord(
        timestamp=WHEN.isoformat(),
        conversation_id=session_id,
        ai_actions=[AIAction(WHEN.isoformat(), "claude", details)],
    )


class TestSessionStore:
    """Tests for SessionStore."""

    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for tests."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def store(self, temp_dir):
        """Create a SessionStore with temporary storage."""
        return SessionStore(session_dir=temp_dir / "recent")

    def test_path_for(self, store):
        """Test the file naming convention."""
        path = store.path_for("sess-1", WHEN)
        assert path.name == "2025-10-24_sess-1.aicf"

    def test_path_for_uses_utc_date(self, store):
        """Test that the date is taken in UTC."""
        local = datetime(2025, 10, 25, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert store.path_for("s", local).name == "2025-10-24_s.aicf"

    def test_write_creates_file(self, store):
        """Test that the first write creates the file with one record."""
        path = store.write(make_record(), when=WHEN)

        assert path.exists()
        assert path.read_text(encoding="utf-8") == ContextCodec().encode(make_record())

    def test_write_appends_with_blank_line(self, store):
        """Test that a second write for the same day appends a record."""
        first = make_record(details="first")
        second = make_record(details="second\nline")

        path = store.write(first, when=WHEN)
        assert store.write(second, when=WHEN) == path

        content = path.read_text(encoding="utf-8")
        assert content.count("\n\n") == 1
        assert store.read_path(path) == [first, second]

    def test_different_days_use_different_files(self, store):
        """Test that a new UTC date starts a new file."""
        store.write(make_record(), when=WHEN)
        store.write(make_record(), when=WHEN + timedelta(days=1))

        assert len(store.list_files("sess-1")) == 2

    def test_read(self, store):
        """Test reading records back by session and date."""
        store.write(make_record(), when=WHEN)
        assert store.read("sess-1", WHEN) == [make_record()]

    def test_read_missing(self, store):
        """Test reading a session with no file."""
        assert store.read("nothing", WHEN) == []

    def test_read_malformed(self, store, temp_dir):
        """Test that a corrupt file raises FormatError."""
        bad = temp_dir / "bad.aicf"
        bad.write_text("version|1\nnot a field line")
        with pytest.raises(FormatError):
            store.read_path(bad)

    def test_list_files(self, store):
        """Test listing files, newest first, filtered by session."""
        old = store.write(make_record("a"), when=WHEN)
        os.utime(old, (time.time() - 100, time.time() - 100))
        new = store.write(make_record("b"), when=WHEN)

        assert store.list_files() == [new, old]
        assert store.list_files("a") == [old]

    def test_list_files_matches_whole_session_id(self, store):
        """Test that a session id does not match ids ending with it."""
        own = store.write(make_record("a"), when=WHEN)
        store.write(make_record("b_a"), when=WHEN)

        assert store.list_files("a") == [own]

    def test_locks_released_after_write(self, store):
        """Test that per-path locks do not accumulate."""
        for i in range(5):
            store.write(make_record(f"s{i}"), when=WHEN)
        assert store._locks == {}

    def test_list_files_without_directory(self, temp_dir):
        """Test that a missing directory lists nothing."""
        assert SessionStore(temp_dir / "missing").list_files() == []

    def test_load_latest(self, store):
        """Test loading the last record written for a session."""
        store.write(make_record(details="one"), when=WHEN)
        store.write(make_record(details="two"), when=WHEN)

        latest = store.load_latest("sess-1")
        assert latest is not None
        assert latest.ai_actions[0].details == "two"

    def test_load_latest_missing(self, store):
        """Test loading the latest record of an unknown session."""
        assert store.load_latest("unknown") is None

    def test_load_latest_invalid_id(self, store):
        with pytest.raises(ValueError):
            store.load_latest("*")


class TestValidateSessionId:
    """Tests for session id validation."""

    @pytest.mark.parametrize("session_id", ["abc123", "run_1.2-x"])
    def test_valid(self, session_id):
        assert validate_session_id(session_id) == session_id

    @pytest.mark.parametrize("session_id", ["", "..", "a/b", "a|b", "a b"])
    def test_invalid(self, session_id):
        with pytest.raises(ValueError):
            validate_session_id(session_id)
