"""Tests for log entry helper functions."""

import time
from datetime import datetime

import pytest

from telemetripy.core.logs import elapsed_ms, epoch_ms, error_details, make_entry, utc_timestamp
from telemetripy.core.models import LogContext, LogEntry, LogLevel
from telemetripy.core.redaction import REDACTED


class TestMakeEntry:
    """Tests for make_entry()."""

    @pytest.mark.core
    def test_creates_entry_with_level_and_message(self) -> None:
        entry = make_entry(LogLevel.INFO, "Server started")

        assert isinstance(entry, LogEntry)
        assert entry.level is LogLevel.INFO
        assert entry.message == "Server started"
        assert entry.context is None
        assert entry.error is None

    @pytest.mark.core
    def test_timestamp_is_iso_utc(self) -> None:
        """The timestamp parses as an aware UTC datetime."""
        entry = make_entry(LogLevel.INFO, "Test")

        parsed = datetime.fromisoformat(entry.timestamp)
        assert parsed.utcoffset() is not None
        assert parsed.utcoffset().total_seconds() == 0

    @pytest.mark.core
    def test_redacts_sensitive_metadata(self) -> None:
        """Sensitive metadata keys are masked, others kept."""
        context = LogContext(action="login", metadata={"password": "hunter2", "user": "ana"})

        entry = make_entry(LogLevel.INFO, "Login", context)

        assert entry.context is not None
        assert entry.context.metadata == {"password": REDACTED, "user": "ana"}
        assert entry.context.action == "login"
        assert context.metadata == {"password": "hunter2", "user": "ana"}

    @pytest.mark.core
    def test_summarizes_error_without_stack_by_default(self) -> None:
        entry = make_entry(LogLevel.ERROR, "Failed", error=ValueError("bad input"))

        assert entry.error is not None
        assert entry.error.name == "ValueError"
        assert entry.error.message == "bad input"
        assert entry.error.stack is None

    @pytest.mark.core
    def test_includes_stack_when_requested(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError as exc:
            entry = make_entry(LogLevel.ERROR, "Failed", error=exc, include_stack=True)

        assert entry.error is not None
        assert entry.error.stack is not None
        assert "RuntimeError: boom" in entry.error.stack


class TestTimeHelpers:
    """Tests for timestamp helpers."""

    @pytest.mark.core
    def test_epoch_ms_uses_wall_clock(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(time, "time", lambda: 1702300000.5)

        assert epoch_ms() == 1702300000500

    @pytest.mark.core
    def test_elapsed_ms_is_non_negative(self) -> None:
        assert elapsed_ms(time.perf_counter()) >= 0

    @pytest.mark.core
    def test_utc_timestamp_has_offset(self) -> None:
        assert utc_timestamp().endswith("+00:00")

    @pytest.mark.core
    def test_error_details_of_exception_without_traceback(self) -> None:
        """An exception that was never raised still summarizes cleanly."""
        details = error_details(KeyError("k"), include_stack=True)

        assert details.name == "KeyError"
        assert details.stack is not None
