"""Per-record append-only log files and a follow-mode reader."""

from __future__ import annotations

import time
from pathlib import Path
from typing import BinaryIO, Callable, Iterator

POLL_INTERVAL_SECONDS = 0.1


def log_path(record_id: int, root: Path) -> Path:
    """Return <root>/<id>.log, creating the log directory on demand."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    return root / f"{record_id}.log"


def open_log(record_id: int, root: Path) -> BinaryIO:
    return open(log_path(record_id, root), "ab")


def follow(
    path: Path,
    *,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[str]:
    """Yield text appended to path after the call, polling on empty reads.

    Complete lines come out whole. A trailing partial line is yielded as soon
    as it is on disk, so prompts and progress output show up unterminated.

    Never rewinds and never stops on EOF. Iteration ends when the consumer
    stops pulling or a read raises OSError.
    """
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        handle.seek(0, 2)
        while True:
            chunk = handle.readline()
            if not chunk:
                sleep(poll_interval)
                continue
            yield chunk
