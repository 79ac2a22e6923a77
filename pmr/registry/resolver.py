"""Map a user-supplied target string to a registry record."""

from __future__ import annotations

from typing import Iterable

from pmr.errors import NotFoundError
from pmr.registry.models import ProcessRecord
from pmr.registry.store import ProcessStore


def _parse_id(target: str) -> int | None:
    value = str(target).strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)


def resolve_target(records: Iterable[ProcessRecord], target: str) -> ProcessRecord | None:
    """Return the record matching target by id, else by exact name, else None.

    Duplicate names resolve to the first record in list order.
    """
    candidates = list(records)
    record_id = _parse_id(target)
    if record_id is not None:
        for record in candidates:
            if record.id == record_id:
                return record
    for record in candidates:
        if record.name == target:
            return record
    return None


def require_target(store: ProcessStore, target: str) -> ProcessRecord:
    record = resolve_target(store.list(), target)
    if record is None:
        raise NotFoundError(target)
    return record
