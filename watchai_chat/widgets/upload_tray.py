"""Upload tray and quota banner shown above the input row."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..models import UploadingFile, UploadStatus, UserFile


def render_tray(
    uploading: list[UploadingFile], selected: list[UserFile], dismiss_key: str = ""
) -> Text:
    """Build the tray text: one line per upload, then the selected files."""
    text = Text()
    failed = [e for e in uploading if e.status is UploadStatus.ERROR]
    for entry in uploading:
        if entry.status is UploadStatus.ERROR:
            hint = f"  ({dismiss_key} to dismiss)" if dismiss_key and entry is failed[-1] else ""
            text.append(
                f"✗ {entry.filename}: {entry.error_message}{hint}\n", style="bold red"
            )
        else:
            text.append(f"↑ {entry.filename} {entry.progress}%\n", style="dim")
    if selected:
        names = ", ".join(f.filename for f in selected)
        text.append(f"📎 {names}", style="green")
    return text


class UploadTray(Static):
    """In-flight, failed and selected attachments for the next message."""

    DEFAULT_CSS = """
    UploadTray {
        height: auto;
        padding: 0 1;
    }
    """

    def show(
        self,
        uploading: list[UploadingFile],
        selected: list[UserFile],
        dismiss_key: str = "",
    ) -> None:
        self.update(render_tray(uploading, selected, dismiss_key))
        self.display = bool(uploading or selected)


class QuotaBanner(Static):
    """Dismissible inline error shown when the quota gate refuses a send."""

    DEFAULT_CSS = """
    QuotaBanner {
        height: auto;
        padding: 0 1;
        background: $error 20%;
        color: $text;
    }
    """

    def show(self, message: str | None, dismiss_key: str = "") -> None:
        if not message:
            self.display = False
            self.update("")
            return
        hint = f"  ({dismiss_key} to dismiss)" if dismiss_key else ""
        self.update(Text(f"⚠ {message}{hint}"))
        self.display = True
