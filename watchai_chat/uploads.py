"""Concurrent attachment uploads with per-file progress and error state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any
import uuid

from .config import DEFAULT_DOCUMENT_TYPES, DEFAULT_IMAGE_TYPES
from .exceptions import WatchAIChatError
from .models import UploadingFile, UploadStatus, UserFile
from .task_manager import TaskManager

if TYPE_CHECKING:
    from .client import WatchAIClient

LOGGER = logging.getLogger(__name__)

TASK_PREFIX = "upload:"
DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024

ChangeListener = Callable[[], None]


class AttachmentUploadManager:
    """Run each upload as its own task and keep the tray state.

    ``uploading`` holds entries that are in flight or failed; a successful
    upload leaves it and its ``UserFile`` joins ``selected``. A failed entry
    stays until ``dismiss`` removes it. Uploads never wait on each other.
    """

    def __init__(
        self,
        client: WatchAIClient,
        tasks: TaskManager | None = None,
        *,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        allowed_types: Iterable[str] | None = None,
    ) -> None:
        self.client = client
        self.tasks = tasks or TaskManager()
        self.max_file_bytes = max_file_bytes
        if allowed_types is None:
            allowed_types = [*DEFAULT_DOCUMENT_TYPES, *DEFAULT_IMAGE_TYPES]
        self.allowed_types = frozenset(t.lower() for t in allowed_types)
        self._uploading: dict[str, UploadingFile] = {}
        self._payloads: dict[str, bytes] = {}
        self._selected: list[UserFile] = []
        self._listeners: list[ChangeListener] = []

    @classmethod
    def from_config(
        cls,
        client: WatchAIClient,
        config: dict[str, dict[str, Any]],
        tasks: TaskManager | None = None,
    ) -> AttachmentUploadManager:
        uploads = config["uploads"]
        return cls(
            client,
            tasks,
            max_file_bytes=int(uploads["max_file_bytes"]),
            allowed_types=[
                *uploads["allowed_document_types"],
                *uploads["allowed_image_types"],
            ],
        )

    @property
    def uploading(self) -> list[UploadingFile]:
        return list(self._uploading.values())

    @property
    def selected(self) -> list[UserFile]:
        return list(self._selected)

    @property
    def has_active_uploads(self) -> bool:
        return any(u.status is UploadStatus.UPLOADING for u in self._uploading.values())

    def latest_failed(self) -> UploadingFile | None:
        """Most recently started upload that ended in error, if any."""
        for entry in reversed(list(self._uploading.values())):
            if entry.status is UploadStatus.ERROR:
                return entry
        return None

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def get(self, temp_id: str) -> UploadingFile | None:
        return self._uploading.get(temp_id)

    def validate(self, filename: str, size: int, mime_type: str) -> str | None:
        """Return a user-facing reason the file cannot be uploaded, or ``None``."""
        if size > self.max_file_bytes:
            limit_mb = self.max_file_bytes / (1024 * 1024)
            return f"{filename} is larger than {limit_mb:g} MB."
        if mime_type.lower() not in self.allowed_types:
            return f"{filename}: file type {mime_type or 'unknown'} is not supported."
        return None

    def start_upload(self, path: str | Path) -> str:
        """Read ``path`` and upload it in the background; return its temp id."""
        resolved = Path(path).expanduser()
        mime_type = mimetypes.guess_type(resolved.name)[0] or "application/octet-stream"
        try:
            data = resolved.read_bytes()
        except OSError as exc:
            LOGGER.warning(
                "upload.read.failed",
                extra={"event": "upload.read.failed", "path": str(resolved)},
            )
            return self._add_failed(
                resolved.name, mime_type, f"Cannot read {resolved.name}: {exc.strerror}"
            )
        return self.start_upload_bytes(
            resolved.name, data, mime_type, local_url=resolved.resolve().as_uri()
        )

    def start_upload_bytes(
        self,
        filename: str,
        data: bytes,
        mime_type: str,
        *,
        local_url: str | None = None,
    ) -> str:
        """Upload in-memory ``data`` in the background; return its temp id."""
        reason = self.validate(filename, len(data), mime_type)
        if reason is not None:
            return self._add_failed(filename, mime_type, reason)

        temp_id = self._new_temp_id()
        self._uploading[temp_id] = UploadingFile(
            temp_id=temp_id,
            filename=filename,
            local_url=local_url or f"memory://{temp_id}",
            mime_type=mime_type,
        )
        self._payloads[temp_id] = data
        LOGGER.info(
            "upload.started",
            extra={
                "event": "upload.started",
                "temp_id": temp_id,
                "filename": filename,
                "size": len(data),
            },
        )
        self.tasks.spawn(
            TASK_PREFIX + temp_id, self._run(temp_id, filename, data, mime_type)
        )
        self._notify()
        return temp_id

    async def _run(self, temp_id: str, filename: str, data: bytes, mime_type: str) -> None:
        try:
            stored = await self.client.upload_file(
                filename,
                data,
                mime_type,
                on_progress=lambda sent, total: self._report_progress(temp_id, sent, total),
            )
        except WatchAIChatError as exc:
            LOGGER.warning(
                "upload.failed",
                extra={"event": "upload.failed", "temp_id": temp_id, "error": str(exc)},
            )
            self._finish(temp_id, UploadStatus.ERROR, error_message=str(exc))
            return
        except Exception:  # noqa: BLE001 - any failure ends the tile in ERROR.
            LOGGER.exception(
                "upload.failed", extra={"event": "upload.failed", "temp_id": temp_id}
            )
            self._finish(temp_id, UploadStatus.ERROR, error_message="Upload failed")
            return
        self._finish(temp_id, UploadStatus.SUCCESS, stored=stored)

    def _report_progress(self, temp_id: str, sent: int, total: int) -> None:
        entry = self._uploading.get(temp_id)
        if entry is None or entry.status is not UploadStatus.UPLOADING:
            return
        percent = 100 if total <= 0 else min(100, (sent * 100) // total)
        if percent <= entry.progress:
            return
        entry.progress = percent
        self._notify()

    def _finish(
        self,
        temp_id: str,
        status: UploadStatus,
        *,
        stored: UserFile | None = None,
        error_message: str | None = None,
    ) -> None:
        entry = self._uploading.get(temp_id)
        # Dismissed, or already terminal.
        if entry is None or entry.status is not UploadStatus.UPLOADING:
            return
        entry.status = status
        if status is UploadStatus.SUCCESS and stored is not None:
            entry.progress = 100
            entry.file = stored
            del self._uploading[temp_id]
            self._payloads.pop(temp_id, None)
            self._selected.append(stored)
            LOGGER.info(
                "upload.completed",
                extra={"event": "upload.completed", "temp_id": temp_id, "file_id": stored.id},
            )
        else:
            entry.error_message = error_message or "Upload failed"
        self._notify()

    async def dismiss(self, temp_id: str) -> None:
        """Remove an entry, cancelling its upload if it is still running."""
        entry = self._uploading.pop(temp_id, None)
        self._payloads.pop(temp_id, None)
        await self.tasks.cancel(TASK_PREFIX + temp_id)
        if entry is not None:
            LOGGER.info(
                "upload.dismissed",
                extra={
                    "event": "upload.dismissed",
                    "temp_id": temp_id,
                    "status": entry.status.value,
                },
            )
            self._notify()

    def toggle_selected(self, file: UserFile) -> bool:
        """Add or remove an already-stored file; return whether it is now selected."""
        for index, existing in enumerate(self._selected):
            if existing.id == file.id:
                del self._selected[index]
                self._notify()
                return False
        self._selected.append(file)
        self._notify()
        return True

    def take_selected(self) -> list[UserFile]:
        """Return the selected files and clear the selection for the next send."""
        taken = list(self._selected)
        if taken:
            self._selected.clear()
            self._notify()
        return taken

    async def wait_idle(self) -> None:
        """Wait until every running upload has reached a terminal status."""
        running = [
            task
            for name in self.tasks.names
            if name.startswith(TASK_PREFIX)
            and (task := self.tasks.get(name)) is not None
        ]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel every in-flight upload and drop all preview payloads."""
        for name in self.tasks.names:
            if name.startswith(TASK_PREFIX):
                await self.tasks.cancel(name)
        self._payloads.clear()
        self._uploading.clear()

    def _add_failed(self, filename: str, mime_type: str, reason: str) -> str:
        temp_id = self._new_temp_id()
        self._uploading[temp_id] = UploadingFile(
            temp_id=temp_id,
            filename=filename,
            local_url="",
            mime_type=mime_type,
            status=UploadStatus.ERROR,
            error_message=reason,
        )
        LOGGER.info(
            "upload.rejected",
            extra={"event": "upload.rejected", "temp_id": temp_id, "reason": reason},
        )
        self._notify()
        return temp_id

    @staticmethod
    def _new_temp_id() -> str:
        return f"upload-{uuid.uuid4().hex}"

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
