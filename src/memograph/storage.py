"""Crash-safe JSON file helpers shared by graph and vector persistence."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable

from memograph.errors import PersistenceError

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, data: Any, indent: int | None = None) -> None:
    """Write JSON to ``<path>.tmp`` and rename it over ``path``.

    Readers see either the previous file or the complete new one.

    Args:
        path: Target file.
        data: JSON-serializable payload.
        indent: Optional pretty-print indentation.

    Raises:
        PersistenceError: If encoding or any filesystem step fails.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        payload = json.dumps(data, indent=indent)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Cannot encode snapshot ({exc})", path) from exc

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove temporary file %s", tmp_path)
        raise PersistenceError(f"Failed to write snapshot ({exc})", path) from exc


def read_json(path: Path) -> Any | None:
    """Read a JSON file.

    Returns:
        The decoded payload, or None if the file does not exist.

    Raises:
        PersistenceError: If the file exists but cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Corrupt snapshot ({exc})", path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Failed to read snapshot ({exc})", path) from exc


class RepeatingTimer:
    """Daemon thread calling ``action`` every ``interval`` seconds until cancelled.

    Args:
        interval: Seconds between calls.
        action: Callable to run; exceptions are logged and the timer keeps going.
        name: Thread name, used in log messages.
    """

    def __init__(self, interval: float, action: Callable[[], None], name: str) -> None:
        self.interval = interval
        self.action = action
        self.name = name
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self, wait: bool = True) -> None:
        """Stop the timer.

        Args:
            wait: Join the thread so an in-flight call finishes first. Pass
                False when holding a lock the action may need.
        """
        self._stopped.set()
        if (
            wait
            and self._thread.is_alive()
            and self._thread is not threading.current_thread()
        ):
            self._thread.join(timeout=self.interval + 1.0)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.action()
            except Exception as e:
                logger.error("%s failed: %s", self.name, e)
