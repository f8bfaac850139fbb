import shutil
import tempfile
import unittest
import uuid
from pathlib import Path
from unittest.mock import patch

from codeshot.core.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    StorageUnavailableError,
)
from codeshot.models.extraction import ExtractionJobRecord, ExtractionStatus
from codeshot.services.job_store import INTERRUPTED_MESSAGE, JobStore


def _make_record(total_items: int = 3, owner_id: int = 1) -> ExtractionJobRecord:
    return ExtractionJobRecord(
        job_id=str(uuid.uuid4()),
        owner_id=owner_id,
        label="unit-test",
        total_items=total_items,
        image_refs=[f"/u/{i:04d}.png" for i in range(1, total_items + 1)],
    )


class TestJobStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = JobStore()

    def test_add_and_get_returns_copy(self) -> None:
        record = _make_record()
        self.store.add(record)

        fetched = self.store.get(record.job_id)
        self.assertEqual(fetched.status, ExtractionStatus.PENDING)
        fetched.processed_items = 99
        self.assertEqual(self.store.get(record.job_id).processed_items, 0)

    def test_add_duplicate_rejected(self) -> None:
        record = _make_record()
        self.store.add(record)
        with self.assertRaises(ValueError):
            self.store.add(record)

    def test_require_unknown_job(self) -> None:
        with self.assertRaises(JobNotFoundError):
            self.store.require("nope")
        with self.assertRaises(JobNotFoundError):
            self.store.update("nope", error="x")

    def test_forward_transitions_set_completed_at(self) -> None:
        record = _make_record()
        self.store.add(record)

        processing = self.store.set_status(record.job_id, ExtractionStatus.PROCESSING)
        self.assertIsNone(processing.completed_at)

        completed = self.store.set_status(record.job_id, ExtractionStatus.COMPLETED, output="code")
        self.assertEqual(completed.output, "code")
        self.assertIsNotNone(completed.completed_at)

    def test_backward_transition_rejected(self) -> None:
        record = _make_record()
        self.store.add(record)
        self.store.set_status(record.job_id, ExtractionStatus.PROCESSING)
        self.store.set_status(record.job_id, ExtractionStatus.FAILED, error="boom")

        with self.assertRaises(InvalidTransitionError):
            self.store.set_status(record.job_id, ExtractionStatus.PROCESSING)
        with self.assertRaises(InvalidTransitionError):
            self.store.set_status(record.job_id, ExtractionStatus.COMPLETED)
        self.assertEqual(self.store.get(record.job_id).status, ExtractionStatus.FAILED)

    def test_pending_cannot_skip_to_completed(self) -> None:
        record = _make_record()
        self.store.add(record)
        with self.assertRaises(InvalidTransitionError):
            self.store.set_status(record.job_id, ExtractionStatus.COMPLETED)

    def test_processed_items_bounds(self) -> None:
        record = _make_record(total_items=3)
        self.store.add(record)
        self.store.set_processed(record.job_id, 2)

        with self.assertRaises(ValueError):
            self.store.set_processed(record.job_id, 1)
        with self.assertRaises(ValueError):
            self.store.set_processed(record.job_id, 4)
        self.assertEqual(self.store.get(record.job_id).processed_items, 2)

    def test_unknown_field_rejected(self) -> None:
        record = _make_record()
        self.store.add(record)
        with self.assertRaises(ValueError):
            self.store.update(record.job_id, colour="blue")

    def test_list_for_owner_newest_first(self) -> None:
        older = _make_record(owner_id=5)
        newer = _make_record(owner_id=5)
        newer.created_at = older.created_at.replace(year=older.created_at.year + 1)
        other = _make_record(owner_id=6)
        for record in (older, newer, other):
            self.store.add(record)

        listed = self.store.list_for_owner(5)
        self.assertEqual([r.job_id for r in listed], [newer.job_id, older.job_id])


class TestJobStorePersistence(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_updates_written_to_disk(self) -> None:
        store = JobStore(self.temp_dir)
        record = _make_record()
        store.add(record)
        store.set_status(record.job_id, ExtractionStatus.PROCESSING)
        store.set_processed(record.job_id, 1)

        saved = ExtractionJobRecord.model_validate_json(
            (Path(self.temp_dir) / f"{record.job_id}.json").read_text(encoding="utf-8")
        )
        self.assertEqual(saved.status, ExtractionStatus.PROCESSING)
        self.assertEqual(saved.processed_items, 1)
        self.assertEqual(saved.image_refs, record.image_refs)

    def test_reload_fails_interrupted_jobs(self) -> None:
        first = JobStore(self.temp_dir)
        running = _make_record()
        done = _make_record()
        first.add(running)
        first.add(done)
        first.set_status(running.job_id, ExtractionStatus.PROCESSING)
        first.set_status(done.job_id, ExtractionStatus.PROCESSING)
        first.set_status(done.job_id, ExtractionStatus.COMPLETED, output="code")

        second = JobStore()
        self.assertEqual(second.enable_persistence(self.temp_dir), 2)

        interrupted = second.get(running.job_id)
        self.assertEqual(interrupted.status, ExtractionStatus.FAILED)
        self.assertEqual(interrupted.error, INTERRUPTED_MESSAGE)
        self.assertIsNotNone(interrupted.completed_at)
        self.assertEqual(second.get(done.job_id).output, "code")

    def test_unreadable_file_skipped(self) -> None:
        (Path(self.temp_dir) / "broken.json").write_text("{not json", encoding="utf-8")
        store = JobStore()
        self.assertEqual(store.enable_persistence(self.temp_dir), 0)

    def test_write_failure_raises_storage_unavailable(self) -> None:
        store = JobStore(self.temp_dir)
        record = _make_record()
        store.add(record)

        with patch("codeshot.services.job_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(StorageUnavailableError) as ctx:
                store.set_processed(record.job_id, 1)
        self.assertIn("disk full", str(ctx.exception))
        self.assertEqual(store.get(record.job_id).processed_items, 0)

    def test_failed_terminal_write_keeps_previous_state(self) -> None:
        store = JobStore(self.temp_dir)
        record = _make_record()
        store.add(record)
        store.set_status(record.job_id, ExtractionStatus.PROCESSING)

        with patch("codeshot.services.job_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(StorageUnavailableError):
                store.set_status(record.job_id, ExtractionStatus.COMPLETED, output="code")

        current = store.get(record.job_id)
        self.assertEqual(current.status, ExtractionStatus.PROCESSING)
        self.assertIsNone(current.output)
        self.assertIsNone(current.completed_at)
        failed = store.set_status(record.job_id, ExtractionStatus.FAILED, error="disk full")
        self.assertEqual(failed.status, ExtractionStatus.FAILED)

    def test_reload_on_read_only_dir_keeps_failed_state(self) -> None:
        first = JobStore(self.temp_dir)
        running = _make_record()
        first.add(running)
        first.set_status(running.job_id, ExtractionStatus.PROCESSING)

        second = JobStore()
        with patch("codeshot.services.job_store.os.replace", side_effect=OSError("read-only")):
            self.assertEqual(second.enable_persistence(self.temp_dir), 1)

        interrupted = second.get(running.job_id)
        self.assertEqual(interrupted.status, ExtractionStatus.FAILED)
        self.assertEqual(interrupted.error, INTERRUPTED_MESSAGE)


if __name__ == "__main__":
    unittest.main()
