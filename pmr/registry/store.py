"""File-persisted process registry with locked, atomic whole-document rewrites."""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from pydantic import ValidationError

from pmr.errors import DuplicateNameError, MalformedStoreError, StoreIOError
from pmr.registry.models import (
    MAX_RESTARTS,
    ProcessRecord,
    ProcessStatus,
    RegistrySnapshot,
)

logger = logging.getLogger("pmr.registry.store")

T = TypeVar("T")

if sys.platform == "win32":
    import msvcrt

    def _lock_handle(handle) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)

    def _unlock_handle(handle) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_handle(handle) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)

    def _unlock_handle(handle) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class ProcessStore:
    """Registry of process records backed by one JSON document.

    The snapshot is held in memory for the lifetime of the store. Every
    mutation takes an advisory lock on ``<document>.lock``, re-reads the
    document, applies the change and atomically replaces the document, so
    concurrent CLI invocations never lose each other's updates.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._mutex = threading.Lock()
        self._snapshot = self._initialize()

    def list(self) -> list[ProcessRecord]:
        with self._mutex:
            return [record.model_copy(deep=True) for record in self._snapshot.processes]

    def get(self, record_id: int) -> ProcessRecord | None:
        with self._mutex:
            record = self._snapshot.find(record_id)
            return record.model_copy(deep=True) if record else None

    def add(
        self,
        name: str,
        namespace: str,
        workdir: str,
        program: str,
        pid: int,
        status: ProcessStatus,
        args: list[str],
    ) -> int:
        """Append a new record and return its freshly allocated id."""

        def _add(snapshot: RegistrySnapshot) -> tuple[int, bool]:
            if any(record.name == name for record in snapshot.processes):
                raise DuplicateNameError(name)
            new_id = snapshot.next_id()
            snapshot.processes.append(
                ProcessRecord(
                    id=new_id,
                    pid=pid,
                    name=name,
                    namespace=namespace,
                    status=ProcessStatus(status),
                    program=program,
                    workdir=workdir,
                    args=list(args),
                )
            )
            snapshot.last_id = new_id
            return new_id, True

        new_id = self._mutate(_add)
        logger.info("Registered process %s as id=%s (program=%s)", name, new_id, program)
        return new_id

    def update_status(self, record_id: int, pid: int, status: ProcessStatus) -> None:
        def _update(snapshot: RegistrySnapshot) -> tuple[None, bool]:
            record = snapshot.find(record_id)
            if record is None:
                return None, False
            record.pid = pid
            record.status = ProcessStatus(status)
            return None, True

        self._mutate(_update)
        logger.debug("Process id=%s now pid=%s status=%s", record_id, pid, ProcessStatus(status).value)

    def increment_restarts(self, record_id: int) -> None:
        def _increment(snapshot: RegistrySnapshot) -> tuple[None, bool]:
            record = snapshot.find(record_id)
            if record is None:
                return None, False
            record.restarts = min(record.restarts + 1, MAX_RESTARTS)
            return None, True

        self._mutate(_increment)

    def delete(self, record_id: int) -> None:
        def _delete(snapshot: RegistrySnapshot) -> tuple[None, bool]:
            remaining = [record for record in snapshot.processes if record.id != record_id]
            if len(remaining) == len(snapshot.processes):
                return None, False
            snapshot.processes = remaining
            return None, True

        self._mutate(_delete)
        logger.info("Removed process id=%s from registry", record_id)

    def _initialize(self) -> RegistrySnapshot:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError(f"cannot create registry directory {self.path.parent}: {exc}") from exc
        with self._file_lock():
            if self.path.exists():
                return self._read()
            snapshot = RegistrySnapshot()
            self._write(snapshot)
            logger.info("Initialized empty process registry at %s", self.path)
            return snapshot

    def _mutate(self, change: Callable[[RegistrySnapshot], tuple[T, bool]]) -> T:
        with self._mutex, self._file_lock():
            snapshot = self._read() if self.path.exists() else RegistrySnapshot()
            result, changed = change(snapshot)
            if changed:
                self._write(snapshot)
            self._snapshot = snapshot
            return result

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        try:
            handle = open(self.lock_path, "a+b")
        except OSError as exc:
            raise StoreIOError(f"cannot open registry lock {self.lock_path}: {exc}") from exc
        try:
            try:
                _lock_handle(handle)
            except OSError as exc:
                raise StoreIOError(f"cannot lock registry {self.path}: {exc}") from exc
            try:
                yield
            finally:
                _unlock_handle(handle)
        finally:
            handle.close()

    def _read(self) -> RegistrySnapshot:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(f"cannot read registry {self.path}: {exc}") from exc
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedStoreError(f"registry {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedStoreError(f"registry {self.path} must contain an object")
        try:
            return RegistrySnapshot.model_validate(raw)
        except ValidationError as exc:
            raise MalformedStoreError(f"registry {self.path} has invalid records: {exc}") from exc

    def _write(self, snapshot: RegistrySnapshot) -> None:
        payload = json.dumps(snapshot.model_dump(mode="json"), indent=2)
        tmp_name = ""
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreIOError(f"cannot write registry {self.path}: {exc}") from exc
