"""Spawn supervised programs detached from the CLI with output in the log sink."""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

from pmr.errors import SpawnError
from pmr.runtime.log_sink import open_log

logger = logging.getLogger("pmr.runtime.spawner")


def spawn(record_id: int, program: str, args: list[str], workdir: str, log_root: Path) -> int:
    """Start program and return its pid; stdout and stderr share one append handle."""
    cmd = [program, *args]
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    try:
        log_file = open_log(record_id, log_root)
    except OSError as exc:
        raise SpawnError(f"cannot open log file for process {record_id}: {exc}", program=program) from exc

    with log_file:
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                cwd=workdir or None,
                **kwargs,
            )
        except OSError as exc:
            logger.warning("Spawn of %s failed: %s", program, exc)
            raise SpawnError(f"failed to start {program}: {exc}", program=program) from exc

    logger.info("Spawned %s (id=%s) with pid %s", program, record_id, process.pid)
    return process.pid
