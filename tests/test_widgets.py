"""Unit tests for individual widget classes."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from watchai_chat.models import (
    ChatMessage,
    PendingId,
    PersistedId,
    TokenUsage,
    UploadingFile,
    UploadStatus,
    UserFile,
)

try:
    from watchai_chat.widgets.message import MessageBubble, format_timestamp
    from watchai_chat.widgets.upload_tray import render_tray
    from watchai_chat.screens import parse_attach_paths
except ModuleNotFoundError:
    parse_attach_paths = None  # type: ignore[assignment]
    MessageBubble = None  # type: ignore[assignment,misc]
    format_timestamp = None  # type: ignore[assignment]
    render_tray = None  # type: ignore[assignment]


@unittest.skipIf(MessageBubble is None, "textual is not installed")
class MessageBubbleTests(unittest.TestCase):
    """Validate MessageBubble labels and metadata."""

    def _make_bubble(self, role: str = "user", **kwargs) -> MessageBubble:
        assert MessageBubble is not None
        message = ChatMessage(id=PendingId.new(role), role=role, **kwargs)  # type: ignore[arg-type]
        return MessageBubble(message)

    def test_role_class_applied(self) -> None:
        self.assertIn("role-assistant", self._make_bubble("assistant").classes)
        self.assertIn("role-user", self._make_bubble("user").classes)

    def test_role_prefix(self) -> None:
        self.assertEqual(self._make_bubble("user").role_prefix, "You")
        self.assertEqual(self._make_bubble("assistant").role_prefix, "WatchAI")

    def test_meta_lists_attachments_and_tokens(self) -> None:
        bubble = self._make_bubble(
            "assistant",
            attachments=[UserFile(id="f1", filename="a.pdf")],
            tokens=TokenUsage(prompt=1, completion=2, total=3),
        )
        meta = bubble._compose_meta()
        self.assertIn("a.pdf", meta)
        self.assertIn("3 tokens", meta)

    def test_tokens_hidden_when_disabled(self) -> None:
        assert MessageBubble is not None
        message = ChatMessage(
            id=PersistedId("m1"),
            role="assistant",
            tokens=TokenUsage(prompt=1, completion=2, total=3),
        )
        bubble = MessageBubble(message, show_tokens=False)
        self.assertEqual(bubble._compose_meta(), "")

    def test_update_message_rebinds_before_mount(self) -> None:
        bubble = self._make_bubble("assistant", content="Hi")
        replacement = ChatMessage(id=PersistedId("m2"), role="assistant", content="Hi!")
        bubble.update_message(replacement)
        self.assertIs(bubble.message, replacement)


@unittest.skipIf(format_timestamp is None, "textual is not installed")
class FormatTimestampTests(unittest.TestCase):
    def test_iso_timestamp(self) -> None:
        assert format_timestamp is not None
        self.assertEqual(format_timestamp("2024-05-01T09:41:12.000Z"), "09:41")

    def test_non_iso_value_passes_through(self) -> None:
        assert format_timestamp is not None
        self.assertEqual(format_timestamp("yesterday"), "yesterday")


@unittest.skipIf(render_tray is None, "textual is not installed")
class RenderTrayTests(unittest.TestCase):
    """Validate the upload tray text."""

    def test_progress_error_and_selected_lines(self) -> None:
        assert render_tray is not None
        uploading = [
            UploadingFile("t1", "a.txt", "file:///a.txt", "text/plain", progress=40),
            UploadingFile(
                "t2",
                "b.exe",
                "file:///b.exe",
                "application/octet-stream",
                status=UploadStatus.ERROR,
                error_message="not supported",
            ),
        ]
        text = render_tray(uploading, [UserFile(id="f1", filename="c.pdf")]).plain
        self.assertIn("a.txt 40%", text)
        self.assertIn("b.exe: not supported", text)
        self.assertIn("c.pdf", text)

    def test_dismiss_hint_only_on_newest_failure(self) -> None:
        assert render_tray is not None
        uploading = [
            UploadingFile(
                f"t{n}",
                f"f{n}.txt",
                f"file:///f{n}.txt",
                "text/plain",
                status=UploadStatus.ERROR,
                error_message="boom",
            )
            for n in (1, 2)
        ]
        lines = render_tray(uploading, [], "ctrl+x").plain.splitlines()
        self.assertNotIn("ctrl+x", lines[0])
        self.assertIn("(ctrl+x to dismiss)", lines[1])

    def test_empty_tray(self) -> None:
        assert render_tray is not None
        self.assertEqual(render_tray([], []).plain, "")


@unittest.skipIf(parse_attach_paths is None, "textual is not installed")
class ParseAttachPathsTests(unittest.TestCase):
    """Validate path parsing for the attach prompt."""

    def test_quoted_paths_and_missing_files(self) -> None:
        assert parse_attach_paths is not None
        with tempfile.TemporaryDirectory() as tmp:
            spaced = Path(tmp) / "my notes.txt"
            spaced.write_text("x", encoding="utf-8")
            paths, problems = parse_attach_paths(
                f"\"{spaced}\" {tmp}/missing.pdf {tmp}"
            )
        self.assertEqual(paths, [spaced])
        self.assertEqual(len(problems), 2)
        self.assertIn("no such file", problems[0])
        self.assertIn("not a regular file", problems[1])

    def test_duplicates_are_collapsed(self) -> None:
        assert parse_attach_paths is not None
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "a.txt"
            target.write_text("x", encoding="utf-8")
            paths, problems = parse_attach_paths(f"{target} {target}")
        self.assertEqual(paths, [target])
        self.assertEqual(problems, [])

    def test_unbalanced_quote_is_reported(self) -> None:
        assert parse_attach_paths is not None
        paths, problems = parse_attach_paths("\"unterminated")
        self.assertEqual(paths, [])
        self.assertTrue(problems[0].startswith("Cannot parse paths"))


if __name__ == "__main__":
    unittest.main()
