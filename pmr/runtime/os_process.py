"""Platform process termination and liveness checks."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from typing import Protocol

import psutil

from pmr.errors import SignalError

logger = logging.getLogger("pmr.runtime.os_process")


class ProcessControl(Protocol):
    def terminate(self, pid: int) -> None:
        """Forcefully end pid, raising SignalError when the OS refuses."""

    def is_alive(self, pid: int) -> bool:
        """Return True when pid exists in the OS process table."""


class PosixProcessControl:
    """SIGKILL-based control for unix-like systems."""

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.info("Process %s already gone before kill", pid)
            return
        except OSError as exc:
            raise SignalError(f"failed to kill pid {pid}: {exc}", pid=pid) from exc
        self._reap(pid, blocking=True)

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        self._reap(pid, blocking=False)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        except OSError:
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    @staticmethod
    def _reap(pid: int, *, blocking: bool) -> None:
        # Only succeeds for children of this invocation; others are reaped by their parent.
        try:
            os.waitpid(pid, 0 if blocking else os.WNOHANG)
        except ChildProcessError:
            pass


class WindowsProcessControl:
    """taskkill based control for Windows."""

    def terminate(self, pid: int) -> None:
        try:
            result = subprocess.run(
                ["taskkill", "/PID", str(pid), "/F"],
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise SignalError(f"failed to run taskkill for pid {pid}: {exc}", pid=pid) from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise SignalError(f"taskkill failed for pid {pid}: {detail}", pid=pid)

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        # Counts processes owned by other users as alive even when they cannot be opened.
        return psutil.pid_exists(pid)


def get_process_control() -> ProcessControl:
    if sys.platform == "win32":
        return WindowsProcessControl()
    return PosixProcessControl()
