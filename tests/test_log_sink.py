"""Tests for per-record log paths and the follow-mode reader."""

import tempfile
import unittest
from pathlib import Path

from pmr.runtime.log_sink import follow, log_path, open_log


class LogSinkTests(unittest.TestCase):
    def test_log_path_creates_directory_lazily(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "logs"
            path = log_path(12, root)
            self.assertEqual(path, root / "12.log")
            self.assertTrue(root.is_dir())
            self.assertFalse(path.exists())

    def test_open_log_appends(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "logs"
            with open_log(3, root) as handle:
                handle.write(b"first\n")
            with open_log(3, root) as handle:
                handle.write(b"second\n")
            self.assertEqual((root / "3.log").read_text(), "first\nsecond\n")

    def test_follow_skips_existing_content_and_yields_new_lines(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "1.log"
            path.write_text("old line\n", encoding="utf-8")
            writes = iter(["new ", "line\n", "another\n"])
            sleeps = []

            def _append_on_sleep(interval: float) -> None:
                sleeps.append(interval)
                with open(path, "a", encoding="utf-8") as handle:
                    handle.write(next(writes))

            lines = follow(path, poll_interval=0.01, sleep=_append_on_sleep)
            self.assertEqual(next(lines), "new ")
            self.assertEqual(next(lines), "line\n")
            self.assertEqual(next(lines), "another\n")
            lines.close()
            self.assertTrue(sleeps)
            self.assertTrue(all(interval == 0.01 for interval in sleeps))

    def test_follow_keeps_polling_on_eof(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "1.log"
            path.write_text("", encoding="utf-8")
            calls = []

            def _sleep(interval: float) -> None:
                calls.append(interval)
                if len(calls) == 5:
                    path.write_text("late\n", encoding="utf-8")

            lines = follow(path, sleep=_sleep)
            self.assertEqual(next(lines), "late\n")
            lines.close()
            self.assertEqual(len(calls), 5)

    def test_follow_yields_unterminated_prompt(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "1.log"
            path.write_text("", encoding="utf-8")
            calls = []

            def _sleep(interval: float) -> None:
                calls.append(interval)
                if len(calls) == 1:
                    with open(path, "a", encoding="utf-8") as handle:
                        handle.write("Password: ")
                if len(calls) > 50:
                    raise AssertionError("unterminated text was never yielded")

            lines = follow(path, sleep=_sleep)
            self.assertEqual(next(lines), "Password: ")
            lines.close()

    def test_follow_missing_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(OSError):
                next(follow(Path(tmpdir) / "missing.log"))


if __name__ == "__main__":
    unittest.main()
