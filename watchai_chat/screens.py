"""Modal screens used by the chat app."""

from __future__ import annotations

from pathlib import Path
import shlex

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, Static


def parse_attach_paths(raw: str) -> tuple[list[Path], list[str]]:
    """Split shell-style input into existing files and a list of problems.

    Quoting works as in a shell, so ``"my notes.txt" b.pdf`` is two paths.
    """
    try:
        tokens = shlex.split(raw)
    except ValueError as exc:
        return [], [f"Cannot parse paths: {exc}"]
    paths: list[Path] = []
    problems: list[str] = []
    for token in tokens:
        path = Path(token).expanduser()
        if not path.exists():
            problems.append(f"{token}: no such file")
        elif not path.is_file():
            problems.append(f"{token}: not a regular file")
        elif path not in paths:
            paths.append(path)
    return paths, problems


class AttachFileScreen(ModalScreen[list[Path] | None]):
    """Prompt for one or more files to upload as attachments.

    The screen stays open while any entered path is unusable, so each upload
    the app starts refers to a file that existed at confirmation time.
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    CSS = """
    AttachFileScreen {
        align: center middle;
    }

    #attach-dialog {
        width: 70;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #attach-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #attach-input {
        width: 100%;
        margin-bottom: 1;
    }

    #attach-error {
        color: $error;
    }
    """

    def __init__(self, max_file_bytes: int | None = None) -> None:
        super().__init__()
        self.max_file_bytes = max_file_bytes

    def compose(self) -> ComposeResult:
        with Container(id="attach-dialog"):
            yield Static("Attach files", id="attach-title")
            yield Input(placeholder="~/docs/report.pdf image.png", id="attach-input")
            yield Static("", id="attach-error")
            hint = "Enter to upload | Esc to cancel"
            if self.max_file_bytes:
                hint += f" | max {self.max_file_bytes / (1024 * 1024):g} MB each"
            yield Static(hint, id="attach-help")

    def on_mount(self) -> None:
        self.query_one("#attach-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "attach-input":
            return
        event.stop()
        paths, problems = parse_attach_paths(event.value)
        if problems:
            self.query_one("#attach-error", Static).update("\n".join(problems))
            return
        self.dismiss(paths or None)

    def action_cancel(self) -> None:
        self.dismiss(None)
