"""Process table rendering with live OS stats."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable

import psutil
from rich.console import Console
from rich.table import Table

from pmr.registry.models import ProcessRecord, ProcessStatus

COLUMNS = ("id", "name", "namespace", "pid", "uptime", "restarts", "status", "cpu", "mem", "user")


@dataclass
class ProcessRow:
    id: str
    name: str
    namespace: str
    pid: str
    uptime: str
    restarts: str
    status: str
    cpu: str = "0%"
    mem: str = "0 MB"
    user: str = "N/A"

    def cells(self) -> list[str]:
        return [getattr(self, column) for column in COLUMNS]


def format_uptime(seconds: float) -> str:
    """Render seconds as '1d 2h 3m'; seconds are only shown under an hour."""
    total = int(seconds)
    if total <= 0:
        return "0s"
    days, rest = divmod(total, 24 * 3600)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs and not days and not hours:
        parts.append(f"{secs}s")
    return " ".join(parts) or "0s"


def format_memory(rss_bytes: int) -> str:
    return f"{rss_bytes / 1024 / 1024:.1f} MB"


CPU_SAMPLE_SECONDS = 0.1


def _attach(pid: int) -> psutil.Process | None:
    if pid <= 0:
        return None
    try:
        return psutil.Process(pid)
    except psutil.NoSuchProcess:
        return None


def _prime_cpu(procs: Iterable[psutil.Process | None], sleep: Callable[[float], None]) -> None:
    """Take the first cpu_percent sample for every process, then wait one interval."""
    primed = False
    for proc in procs:
        if proc is None:
            continue
        try:
            proc.cpu_percent(interval=None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        primed = True
    if primed:
        sleep(CPU_SAMPLE_SECONDS)


def _live_stats(proc: psutil.Process) -> dict[str, str]:
    with proc.oneshot():
        stats = {
            "uptime": format_uptime(time.time() - proc.create_time()),
            "cpu": f"{proc.cpu_percent(interval=None):.1f}%",
            "mem": format_memory(proc.memory_info().rss),
        }
        try:
            stats["user"] = proc.username()
        except (psutil.AccessDenied, KeyError):
            stats["user"] = "N/A"
    return stats


def _apply(row: ProcessRow, stats: dict[str, str]) -> None:
    for key, value in stats.items():
        setattr(row, key, value)


def _record_row(record: ProcessRecord, proc: psutil.Process | None) -> ProcessRow:
    row = ProcessRow(
        id=str(record.id),
        name=record.name,
        namespace=record.namespace,
        pid=str(record.pid),
        uptime="0s",
        restarts=str(record.restarts),
        status=ProcessStatus(record.status).value,
    )
    if record.pid <= 0:
        return row
    if proc is None:
        row.status = ProcessStatus.STOPPED.value
        return row
    try:
        stats = _live_stats(proc)
    except psutil.NoSuchProcess:
        row.status = ProcessStatus.STOPPED.value
        return row
    except psutil.AccessDenied:
        return row
    _apply(row, stats)
    return row


def record_row(record: ProcessRecord, *, sleep: Callable[[float], None] = time.sleep) -> ProcessRow:
    """Build a table row, filling live stats when the recorded pid still exists."""
    return collect_rows([record], sleep=sleep)[0]


def collect_rows(
    records: Iterable[ProcessRecord],
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> list[ProcessRow]:
    """One row per record. CPU usage is measured over a single shared interval."""
    records = list(records)
    procs = [_attach(record.pid) for record in records]
    _prime_cpu(procs, sleep)
    return [_record_row(record, proc) for record, proc in zip(records, procs)]


def collect_system_rows(*, sleep: Callable[[float], None] = time.sleep) -> list[ProcessRow]:
    procs = list(psutil.process_iter(["pid", "name", "status"]))
    _prime_cpu(procs, sleep)
    rows: list[ProcessRow] = []
    for proc in procs:
        info = proc.info
        row = ProcessRow(
            id="0",
            name=info.get("name") or "",
            namespace="default",
            pid=str(info.get("pid")),
            uptime="0s",
            restarts="0",
            status=str(info.get("status") or ""),
        )
        try:
            stats = _live_stats(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            rows.append(row)
            continue
        _apply(row, stats)
        rows.append(row)
    return rows


def build_table(rows: Iterable[ProcessRow]) -> Table:
    table = Table()
    for column in COLUMNS:
        table.add_column(column)
    for row in rows:
        table.add_row(*row.cells())
    return table


def render_table(rows: Iterable[ProcessRow], console: Console | None = None) -> None:
    (console or Console()).print(build_table(rows))
