"""Long-lived ExifTool processes, one per worker thread.

ExifTool runs in ``-stay_open`` mode and answers one request at a time, so a
helper is never shared between threads. Each thread starts its process on
first use and keeps it for the rest of the batch.
"""

from __future__ import annotations

import threading

from exiftool import ExifToolHelper
from exiftool.exceptions import ExifToolException

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "exiftool"})


class ExifToolSessions:
    """Hand out a running :class:`ExifToolHelper` per calling thread."""

    def __init__(self, executable: str | None = None) -> None:
        self._executable = executable
        self._local = threading.local()
        self._lock = threading.Lock()
        self._started: list[ExifToolHelper] = []

    def get(self) -> ExifToolHelper:
        """Return this thread's helper, starting a process when none is running."""

        helper = getattr(self._local, "helper", None)
        if helper is not None and helper.running:
            return helper

        helper = ExifToolHelper(executable=self._executable)
        helper.run()
        self._local.helper = helper
        with self._lock:
            self._started.append(helper)
        LOGGER.debug("exiftool_started", extra={"executable": self._executable, "running": len(self._started)})
        return helper

    def discard(self) -> None:
        """Stop this thread's process; the next :meth:`get` starts a fresh one."""

        helper = getattr(self._local, "helper", None)
        self._local.helper = None
        if helper is None:
            return
        with self._lock:
            if helper in self._started:
                self._started.remove(helper)
        _terminate(helper)

    def close(self) -> None:
        """Stop every process started through this instance."""

        with self._lock:
            started, self._started = self._started, []
        for helper in started:
            _terminate(helper)
        if started:
            LOGGER.debug("exiftool_closed", extra={"count": len(started)})


def _terminate(helper: ExifToolHelper) -> None:
    if not helper.running:
        return
    try:
        helper.terminate()
    except (OSError, ExifToolException) as exc:
        LOGGER.warning("exiftool_terminate_error", extra={"error": str(exc)})


__all__ = ["ExifToolSessions"]
