"""Tests for the file-persisted process registry store."""

import json
import multiprocessing
import tempfile
import unittest
from pathlib import Path

from pmr.errors import DuplicateNameError, MalformedStoreError
from pmr.registry.models import MAX_RESTARTS, ProcessStatus
from pmr.registry.store import ProcessStore

WRITERS = 6
RECORDS_PER_WRITER = 15


def _add_records(path: str, worker: int, start) -> None:
    store = ProcessStore(Path(path))
    start.wait()
    for index in range(RECORDS_PER_WRITER):
        store.add(f"w{worker}-{index}", "default", "/tmp", "sleep", 0, ProcessStatus.STARTING, [])


class ProcessStoreTests(unittest.TestCase):
    """Validate CRUD semantics, id allocation and on-disk format."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "state" / "dump.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _add(self, store: ProcessStore, name: str) -> int:
        return store.add(name, "default", "/tmp", "sleep", 0, ProcessStatus.STARTING, ["30"])

    def test_creates_empty_document_on_first_use(self) -> None:
        store = ProcessStore(self.path)
        self.assertEqual(store.list(), [])
        self.assertTrue(self.path.exists())
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(payload["processes"], [])

    def test_add_update_increment_delete_scenario(self) -> None:
        store = ProcessStore(self.path)
        record_id = store.add("web", "default", "/tmp", "sleep", 0, "starting", ["30"])
        self.assertEqual(record_id, 1)

        store.update_status(1, 4321, ProcessStatus.RUNNING)
        records = store.list()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].id, 1)
        self.assertEqual(records[0].pid, 4321)
        self.assertEqual(records[0].status, ProcessStatus.RUNNING)
        self.assertEqual(records[0].restarts, 0)
        self.assertEqual(records[0].args, ["30"])

        store.increment_restarts(1)
        self.assertEqual(store.list()[0].restarts, 1)

        store.delete(1)
        self.assertEqual(store.list(), [])

    def test_ids_strictly_increase_across_deletes(self) -> None:
        store = ProcessStore(self.path)
        seen = []
        for index in range(3):
            seen.append(self._add(store, f"p{index}"))
        store.delete(seen[-1])
        seen.append(self._add(store, "p3"))
        store.delete(seen[0])
        seen.append(self._add(store, "p4"))
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(len(set(seen)), len(seen))
        self.assertEqual(seen[3], 4)

    def test_ids_survive_reload_after_deleting_highest(self) -> None:
        store = ProcessStore(self.path)
        self._add(store, "a")
        second = self._add(store, "b")
        store.delete(second)
        reopened = ProcessStore(self.path)
        self.assertEqual(self._add(reopened, "c"), 3)

    def test_legacy_document_without_high_water_mark(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            json.dumps(
                {
                    "processes": [
                        {
                            "id": 7,
                            "pid": 0,
                            "name": "old",
                            "namespace": "default",
                            "status": "stopped",
                            "program": "sleep",
                            "workdir": "/tmp",
                            "args": [],
                            "restarts": 2,
                        }
                    ]
                }
            ),
            encoding="utf-8",
        )
        store = ProcessStore(self.path)
        self.assertEqual(store.list()[0].restarts, 2)
        self.assertEqual(self._add(store, "new"), 8)

    def test_missing_ids_are_noops(self) -> None:
        store = ProcessStore(self.path)
        self._add(store, "web")
        before = self.path.read_text(encoding="utf-8")
        store.update_status(99, 1, ProcessStatus.RUNNING)
        store.increment_restarts(99)
        store.delete(99)
        self.assertEqual(self.path.read_text(encoding="utf-8"), before)
        self.assertEqual(len(store.list()), 1)

    def test_increment_restarts_saturates(self) -> None:
        store = ProcessStore(self.path)
        record_id = self._add(store, "web")
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        payload["processes"][0]["restarts"] = MAX_RESTARTS
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        store.increment_restarts(record_id)
        self.assertEqual(store.get(record_id).restarts, MAX_RESTARTS)

    def test_duplicate_name_rejected(self) -> None:
        store = ProcessStore(self.path)
        self._add(store, "web")
        with self.assertRaises(DuplicateNameError):
            self._add(store, "web")
        self.assertEqual(len(store.list()), 1)

    def test_malformed_document_fails_fast(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text('{"processes": [', encoding="utf-8")
        with self.assertRaises(MalformedStoreError):
            ProcessStore(self.path)

    def test_schema_invalid_document_fails_fast(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"processes": [{"id": "x"}]}), encoding="utf-8")
        with self.assertRaises(MalformedStoreError):
            ProcessStore(self.path)
        self.path.write_text(json.dumps([]), encoding="utf-8")
        with self.assertRaises(MalformedStoreError):
            ProcessStore(self.path)

    def test_concurrent_stores_do_not_lose_updates(self) -> None:
        first = ProcessStore(self.path)
        second = ProcessStore(self.path)
        first_id = self._add(first, "a")
        second_id = self._add(second, "b")
        self.assertNotEqual(first_id, second_id)
        names = sorted(record.name for record in ProcessStore(self.path).list())
        self.assertEqual(names, ["a", "b"])

    @unittest.skipUnless("fork" in multiprocessing.get_all_start_methods(), "requires fork")
    def test_parallel_writers_allocate_unique_ids(self) -> None:
        ProcessStore(self.path)
        ctx = multiprocessing.get_context("fork")
        start = ctx.Event()
        workers = [
            ctx.Process(target=_add_records, args=(str(self.path), worker, start))
            for worker in range(WRITERS)
        ]
        for worker in workers:
            worker.start()
        start.set()
        for worker in workers:
            worker.join(timeout=60)
        self.assertEqual([worker.exitcode for worker in workers], [0] * WRITERS)

        records = ProcessStore(self.path).list()
        ids = [record.id for record in records]
        self.assertEqual(len(ids), WRITERS * RECORDS_PER_WRITER)
        self.assertEqual(len(set(ids)), len(ids))
        self.assertEqual(sorted(ids), list(range(1, WRITERS * RECORDS_PER_WRITER + 1)))

    def test_rewrite_leaves_no_temp_files(self) -> None:
        store = ProcessStore(self.path)
        self._add(store, "a")
        store.update_status(1, 10, ProcessStatus.RUNNING)
        leftovers = [p.name for p in self.path.parent.iterdir() if p.suffix == ".tmp"]
        self.assertEqual(leftovers, [])
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(payload["processes"][0]["status"], "running")
        self.assertEqual(payload["last_id"], 1)

    def test_list_returns_copies(self) -> None:
        store = ProcessStore(self.path)
        self._add(store, "a")
        records = store.list()
        records[0].pid = 999
        self.assertEqual(store.list()[0].pid, 0)


if __name__ == "__main__":
    unittest.main()
