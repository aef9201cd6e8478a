"""Tests for concurrent attachment uploads."""

from __future__ import annotations

import asyncio
from pathlib import Path
import tempfile
import unittest

from watchai_chat.exceptions import UploadFailedError
from watchai_chat.models import UploadStatus, UserFile
from watchai_chat.uploads import AttachmentUploadManager


class UploadClient:
    """Fake client whose uploads finish when the test releases them."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, str] = {}
        self.crashes: set[str] = set()
        self.progress_steps: dict[str, list[tuple[int, int]]] = {}
        self.started: list[str] = []
        self.cancelled: list[str] = []

    def gate(self, filename: str) -> asyncio.Event:
        return self.gates.setdefault(filename, asyncio.Event())

    async def upload_file(self, filename, data, mime_type, on_progress=None) -> UserFile:
        self.started.append(filename)
        for sent, total in self.progress_steps.get(filename, []):
            if on_progress is not None:
                on_progress(sent, total)
        try:
            await self.gate(filename).wait()
        except asyncio.CancelledError:
            self.cancelled.append(filename)
            raise
        if filename in self.crashes:
            raise RuntimeError("Cannot send a request, as the client has been closed.")
        if filename in self.failures:
            raise UploadFailedError(self.failures[filename])
        return UserFile(id=f"id-{filename}", filename=filename, mime_type=mime_type, size=len(data))


class AttachmentUploadManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate independent per-file outcomes and teardown."""

    def setUp(self) -> None:
        self.client = UploadClient()
        self.manager = AttachmentUploadManager(self.client)  # type: ignore[arg-type]

    async def asyncTearDown(self) -> None:
        await self.manager.aclose()

    async def test_one_success_and_one_failure_are_independent(self) -> None:
        self.client.failures["b.pdf"] = "Upload failed: server rejected file"
        a_id = self.manager.start_upload_bytes("a.pdf", b"%PDF-a", "application/pdf")
        b_id = self.manager.start_upload_bytes("b.pdf", b"%PDF-b", "application/pdf")
        await asyncio.sleep(0)
        self.assertEqual(len(self.manager.uploading), 2)

        self.client.gate("a.pdf").set()
        self.client.gate("b.pdf").set()
        await self.manager.wait_idle()

        self.assertEqual([f.id for f in self.manager.selected], ["id-a.pdf"])
        self.assertIsNone(self.manager.get(a_id))
        entries = self.manager.uploading
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].temp_id, b_id)
        self.assertIs(entries[0].status, UploadStatus.ERROR)
        self.assertEqual(entries[0].error_message, "Upload failed: server rejected file")

    async def test_failure_of_one_does_not_delay_the_other(self) -> None:
        self.client.failures["b.txt"] = "boom"
        self.manager.start_upload_bytes("a.txt", b"a", "text/plain")
        self.manager.start_upload_bytes("b.txt", b"b", "text/plain")
        self.client.gate("b.txt").set()
        await asyncio.sleep(0.01)
        statuses = {u.filename: u.status for u in self.manager.uploading}
        self.assertIs(statuses["b.txt"], UploadStatus.ERROR)
        self.assertIs(statuses["a.txt"], UploadStatus.UPLOADING)

    async def test_progress_never_decreases(self) -> None:
        self.client.progress_steps["a.txt"] = [(10, 100), (50, 100), (30, 100), (90, 100)]
        seen: list[int] = []
        temp_id = self.manager.start_upload_bytes("a.txt", b"a", "text/plain")

        def _record() -> None:
            entry = self.manager.get(temp_id)
            if entry is not None:
                seen.append(entry.progress)

        self.manager.on_change(_record)
        await asyncio.sleep(0)
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(self.manager.get(temp_id).progress, 90)  # type: ignore[union-attr]

    async def test_exactly_one_terminal_transition(self) -> None:
        self.client.failures["a.txt"] = "first"
        temp_id = self.manager.start_upload_bytes("a.txt", b"a", "text/plain")
        self.client.gate("a.txt").set()
        await self.manager.wait_idle()
        entry = self.manager.get(temp_id)
        assert entry is not None
        self.manager._finish(temp_id, UploadStatus.SUCCESS, stored=UserFile("x", "a.txt"))
        self.assertIs(entry.status, UploadStatus.ERROR)
        self.assertEqual(self.manager.selected, [])

    async def test_unexpected_exception_ends_in_error(self) -> None:
        self.client.crashes.add("a.txt")
        temp_id = self.manager.start_upload_bytes("a.txt", b"x", "text/plain")
        self.client.gate("a.txt").set()
        with self.assertLogs("watchai_chat.uploads", level="ERROR"):
            await self.manager.wait_idle()
        entry = self.manager.get(temp_id)
        assert entry is not None
        self.assertIs(entry.status, UploadStatus.ERROR)
        self.assertEqual(entry.error_message, "Upload failed")
        self.assertFalse(self.manager.has_active_uploads)
        self.assertEqual(self.manager.selected, [])

    async def test_failed_tiles_are_dismissed_one_at_a_time(self) -> None:
        self.client.failures["a.txt"] = "first"
        self.client.failures["b.txt"] = "second"
        a_id = self.manager.start_upload_bytes("a.txt", b"a", "text/plain")
        b_id = self.manager.start_upload_bytes("b.txt", b"b", "text/plain")
        self.manager.start_upload_bytes("c.txt", b"c", "text/plain")
        self.client.gate("a.txt").set()
        self.client.gate("b.txt").set()
        await asyncio.sleep(0.01)

        latest = self.manager.latest_failed()
        assert latest is not None
        self.assertEqual(latest.temp_id, b_id)
        await self.manager.dismiss(latest.temp_id)

        remaining = {u.filename: u.status for u in self.manager.uploading}
        self.assertEqual(
            remaining, {"a.txt": UploadStatus.ERROR, "c.txt": UploadStatus.UPLOADING}
        )
        latest = self.manager.latest_failed()
        assert latest is not None
        self.assertEqual(latest.temp_id, a_id)
        await self.manager.dismiss(a_id)
        self.assertIsNone(self.manager.latest_failed())

    async def test_dismiss_cancels_in_flight_upload(self) -> None:
        temp_id = self.manager.start_upload_bytes("a.txt", b"a", "text/plain")
        await asyncio.sleep(0)
        await self.manager.dismiss(temp_id)
        self.assertEqual(self.client.cancelled, ["a.txt"])
        self.assertIsNone(self.manager.get(temp_id))
        self.assertEqual(self.manager.selected, [])

    async def test_oversized_file_is_rejected_without_request(self) -> None:
        manager = AttachmentUploadManager(self.client, max_file_bytes=4)  # type: ignore[arg-type]
        temp_id = manager.start_upload_bytes("big.txt", b"12345", "text/plain")
        entry = manager.get(temp_id)
        assert entry is not None
        self.assertIs(entry.status, UploadStatus.ERROR)
        self.assertIn("larger than", entry.error_message or "")
        self.assertEqual(self.client.started, [])

    async def test_unsupported_type_is_rejected(self) -> None:
        temp_id = self.manager.start_upload_bytes("a.exe", b"MZ", "application/x-msdownload")
        entry = self.manager.get(temp_id)
        assert entry is not None
        self.assertIs(entry.status, UploadStatus.ERROR)
        self.assertIn("not supported", entry.error_message or "")

    async def test_start_upload_from_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "notes.txt"
            path.write_text("hello", encoding="utf-8")
            temp_id = self.manager.start_upload(path)
        entry = self.manager.get(temp_id)
        assert entry is not None
        self.assertEqual(entry.mime_type, "text/plain")
        self.assertTrue(entry.local_url.startswith("file://"))
        self.client.gate("notes.txt").set()
        await self.manager.wait_idle()
        self.assertEqual([f.filename for f in self.manager.selected], ["notes.txt"])

    async def test_missing_path_becomes_error_entry(self) -> None:
        temp_id = self.manager.start_upload("/nonexistent/dir/file.txt")
        entry = self.manager.get(temp_id)
        assert entry is not None
        self.assertIs(entry.status, UploadStatus.ERROR)

    async def test_toggle_and_take_selected(self) -> None:
        stored = UserFile(id="f1", filename="old.pdf", mime_type="application/pdf")
        self.assertTrue(self.manager.toggle_selected(stored))
        self.assertFalse(self.manager.toggle_selected(stored))
        self.manager.toggle_selected(stored)
        taken = self.manager.take_selected()
        self.assertEqual([f.id for f in taken], ["f1"])
        self.assertEqual(self.manager.selected, [])

    async def test_aclose_cancels_every_upload(self) -> None:
        self.manager.start_upload_bytes("a.txt", b"a", "text/plain")
        self.manager.start_upload_bytes("b.txt", b"b", "text/plain")
        await asyncio.sleep(0)
        await self.manager.aclose()
        self.assertEqual(sorted(self.client.cancelled), ["a.txt", "b.txt"])
        self.assertEqual(self.manager.uploading, [])


if __name__ == "__main__":
    unittest.main()
