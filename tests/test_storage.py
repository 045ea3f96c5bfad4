"""Tests for atomic JSON files and the repeating timer."""

import threading
import time
from unittest.mock import patch

import pytest

from memograph.errors import PersistenceError
from memograph.storage import RepeatingTimer, atomic_write_json, read_json


class TestAtomicWrite:
    def test_writes_and_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "data.json"
        atomic_write_json(path, {"a": [1, 2]})
        assert read_json(path) == {"a": [1, 2]}
        assert not (tmp_path / "nested" / "data.json.tmp").exists()

    def test_indent(self, tmp_path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"a": 1}, indent=2)
        assert path.read_text() == '{\n  "a": 1\n}'

    def test_unencodable_payload(self, tmp_path):
        path = tmp_path / "data.json"
        with pytest.raises(PersistenceError, match="encode"):
            atomic_write_json(path, {"a": object()})
        assert not path.exists()

    def test_failed_rename_keeps_old_file(self, tmp_path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"v": 1})
        with patch("memograph.storage.os.replace", side_effect=OSError("boom")):
            with pytest.raises(PersistenceError):
                atomic_write_json(path, {"v": 2})
        assert read_json(path) == {"v": 1}
        assert not (tmp_path / "data.json.tmp").exists()


class TestReadJson:
    def test_missing_is_none(self, tmp_path):
        assert read_json(tmp_path / "absent.json") is None

    def test_corrupt_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        with pytest.raises(PersistenceError, match="Corrupt"):
            read_json(path)

    def test_directory_raises(self, tmp_path):
        with pytest.raises(PersistenceError):
            read_json(tmp_path)


class TestRepeatingTimer:
    def test_runs_until_cancelled(self):
        calls = []
        ran_twice = threading.Event()

        def action():
            calls.append(1)
            if len(calls) >= 2:
                ran_twice.set()

        timer = RepeatingTimer(0.01, action, name="test-timer")
        timer.start()
        assert timer.is_running
        assert ran_twice.wait(timeout=5)
        timer.cancel()
        assert not timer.is_running
        count = len(calls)
        time.sleep(0.05)
        assert len(calls) == count

    def test_exceptions_do_not_stop_timer(self, caplog):
        calls = []
        recovered = threading.Event()

        def action():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("transient")
            recovered.set()

        timer = RepeatingTimer(0.01, action, name="flaky-timer")
        timer.start()
        try:
            assert recovered.wait(timeout=5)
        finally:
            timer.cancel()
        assert "flaky-timer failed: transient" in caplog.text

    def test_cancel_before_start(self):
        timer = RepeatingTimer(10, lambda: None, name="idle")
        timer.cancel()
        assert not timer.is_running

    def test_cancel_without_waiting_returns_during_a_call(self):
        entered = threading.Event()
        release = threading.Event()

        def action():
            entered.set()
            release.wait(timeout=5)

        timer = RepeatingTimer(0.01, action, name="busy")
        timer.start()
        try:
            assert entered.wait(timeout=5)
            started = time.monotonic()
            timer.cancel(wait=False)
            assert time.monotonic() - started < 0.5
            assert not timer.is_running
        finally:
            release.set()
            timer.cancel()
