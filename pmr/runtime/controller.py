"""Start/stop/restart/delete lifecycle over the process registry."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from pmr.config import load_program_config
from pmr.errors import ConfigParseError, SignalError
from pmr.registry.models import DEFAULT_NAMESPACE, ProcessRecord, ProcessStatus
from pmr.registry.resolver import require_target, resolve_target
from pmr.registry.store import ProcessStore
from pmr.runtime.log_sink import log_path
from pmr.runtime.os_process import ProcessControl, get_process_control
from pmr.runtime.spawner import spawn

logger = logging.getLogger("pmr.runtime.controller")

UNNAMED = "unnamed"


class OutcomeKind(str, Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    DUPLICATE_NAME = "duplicate_name"
    STOPPED = "stopped"
    ALREADY_STOPPED = "already_stopped"
    RECONCILED = "reconciled"
    RESTARTED = "restarted"
    DELETED = "deleted"


WARNING_KINDS = {
    OutcomeKind.ALREADY_RUNNING,
    OutcomeKind.DUPLICATE_NAME,
    OutcomeKind.ALREADY_STOPPED,
}


@dataclass
class LifecycleOutcome:
    kind: OutcomeKind
    record: ProcessRecord | None
    message: str

    @property
    def is_warning(self) -> bool:
        return self.kind in WARNING_KINDS


SpawnFn = Callable[[int, str, list, str, Path], int]


class LifecycleController:
    """Compose registry mutations with OS spawn and signal calls.

    OS failures surface as SpawnError / SignalError; user-facing conditions
    such as "already running" come back as warning outcomes.
    """

    def __init__(
        self,
        store: ProcessStore,
        log_root: Path,
        *,
        process_control: ProcessControl | None = None,
        spawn_fn: SpawnFn = spawn,
    ) -> None:
        self.store = store
        self.log_root = Path(log_root)
        self.process_control = process_control or get_process_control()
        self.spawn_fn = spawn_fn

    def start(
        self,
        target: str | None = None,
        *,
        config_path: Path | None = None,
        name: str | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        args: list[str] | None = None,
        workdir: str | None = None,
    ) -> LifecycleOutcome:
        """Start an existing record by id/name, or register and launch a new program."""
        if target is None and config_path is None:
            raise ConfigParseError("either --config or a target is required")
        if target is not None:
            record = resolve_target(self.store.list(), target)
            if record is not None:
                return self._start_existing(record)
        return self._start_fresh(
            target,
            config_path=config_path,
            name=name,
            namespace=namespace,
            args=list(args or []),
            workdir=workdir,
        )

    def stop(self, target: str) -> LifecycleOutcome:
        record = require_target(self.store, target)
        return self._stop_record(record)

    def restart(
        self,
        target: str | None = None,
        *,
        config_path: Path | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        args: list[str] | None = None,
    ) -> LifecycleOutcome:
        """Stop and respawn an existing record; unknown targets fall back to start."""
        if target is not None:
            record = resolve_target(self.store.list(), target)
            if record is not None:
                return self._restart_existing(record)
        return self.start(target, config_path=config_path, namespace=namespace, args=args)

    def delete(self, target: str) -> LifecycleOutcome:
        record = require_target(self.store, target)
        note = ""
        if record.pid > 0:
            try:
                self._stop_record(record)
            except SignalError as exc:
                logger.warning("Removing process %s while pid %s may still be alive: %s", record.id, record.pid, exc)
                note = f" (stop failed: {exc})"
        self.store.delete(record.id)
        return LifecycleOutcome(
            OutcomeKind.DELETED,
            record,
            f"Successfully deleted process '{record.name}'{note}",
        )

    def reconcile(self) -> list[ProcessRecord]:
        """Mark records whose OS process is gone as stopped and return the refreshed list."""
        for record in self.store.list():
            if record.pid > 0 and not self.process_control.is_alive(record.pid):
                logger.info("Process %s (pid %s) is gone; marking stopped", record.id, record.pid)
                self.store.update_status(record.id, 0, ProcessStatus.STOPPED)
        return self.store.list()

    def log_file(self, target: str) -> Path:
        record = require_target(self.store, target)
        return log_path(record.id, self.log_root)

    def _start_existing(self, record: ProcessRecord) -> LifecycleOutcome:
        if record.status == ProcessStatus.RUNNING:
            if self.process_control.is_alive(record.pid):
                return LifecycleOutcome(
                    OutcomeKind.ALREADY_RUNNING,
                    record,
                    f"Process '{record.name}' is already running (PID: {record.pid})",
                )
            logger.info("Process %s marked running but pid %s is gone", record.id, record.pid)
        if record.pid > 0:
            self._stop_record(record)
        pid = self._spawn(record)
        self.store.update_status(record.id, pid, ProcessStatus.RUNNING)
        return LifecycleOutcome(
            OutcomeKind.STARTED,
            self.store.get(record.id),
            f"Started process '{record.name}' PID: {pid}",
        )

    def _start_fresh(
        self,
        target: str | None,
        *,
        config_path: Path | None,
        name: str | None,
        namespace: str,
        args: list[str],
        workdir: str | None,
    ) -> LifecycleOutcome:
        config = load_program_config(config_path) if config_path is not None else None
        process_name = name or target or (config.name if config else "") or UNNAMED

        for existing in self.store.list():
            if existing.name == process_name:
                return LifecycleOutcome(
                    OutcomeKind.DUPLICATE_NAME,
                    existing,
                    f"Process '{process_name}' already exists",
                )

        program = config.program if config else target
        run_args = [*(config.args if config else []), *args]
        cwd = workdir or os.getcwd()

        # Record and log path exist before the spawn; a failed launch stays in "starting" with pid 0.
        record_id = self.store.add(
            process_name,
            namespace,
            cwd,
            program,
            0,
            ProcessStatus.STARTING,
            run_args,
        )
        pid = self.spawn_fn(record_id, program, run_args, cwd, self.log_root)
        self.store.update_status(record_id, pid, ProcessStatus.RUNNING)
        return LifecycleOutcome(
            OutcomeKind.STARTED,
            self.store.get(record_id),
            f"Started process '{process_name}' PID: {pid}",
        )

    def _restart_existing(self, record: ProcessRecord) -> LifecycleOutcome:
        logger.info("Restarting process %s (%s)", record.id, record.name)
        self._stop_record(record)
        pid = self._spawn(record)
        self.store.update_status(record.id, pid, ProcessStatus.RUNNING)
        self.store.increment_restarts(record.id)
        return LifecycleOutcome(
            OutcomeKind.RESTARTED,
            self.store.get(record.id),
            f"Process '{record.name}' restarted, new PID: {pid}",
        )

    def _stop_record(self, record: ProcessRecord) -> LifecycleOutcome:
        if record.pid == 0:
            self.store.update_status(record.id, 0, ProcessStatus.STOPPED)
            return LifecycleOutcome(
                OutcomeKind.ALREADY_STOPPED,
                self.store.get(record.id),
                f"Process '{record.name}' is already stopped",
            )
        if not self.process_control.is_alive(record.pid):
            self.store.update_status(record.id, 0, ProcessStatus.STOPPED)
            return LifecycleOutcome(
                OutcomeKind.RECONCILED,
                self.store.get(record.id),
                f"Process '{record.name}' (PID: {record.pid}) was no longer running; marked stopped",
            )
        self.process_control.terminate(record.pid)
        self.store.update_status(record.id, 0, ProcessStatus.STOPPED)
        logger.info("Stopped process %s (pid %s)", record.id, record.pid)
        return LifecycleOutcome(
            OutcomeKind.STOPPED,
            self.store.get(record.id),
            f"Stopped process '{record.name}' (PID: {record.pid})",
        )

    def _spawn(self, record: ProcessRecord) -> int:
        return self.spawn_fn(record.id, record.program, record.args, record.workdir, self.log_root)
