"""Main Textual application for chatting with WatchAI."""

from __future__ import annotations

import logging
from pathlib import Path
import sys
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Footer, Header, Input

from .config import load_config
from .logging_utils import configure_logging
from .pipeline import ChatPipeline
from .screens import AttachFileScreen
from .widgets.conversation import ConversationView
from .widgets.input_box import InputBox
from .widgets.status_bar import StatusBar
from .widgets.upload_tray import QuotaBanner, UploadTray

LOGGER = logging.getLogger(__name__)


class WatchAIChatApp(App[None]):
    """Terminal front end over the chat pipeline."""

    CSS = """
    #app-root {
        layout: vertical;
        height: 1fr;
    }
    #conversation {
        height: 1fr;
        padding: 0 1;
    }
    """

    DEFAULT_ACTION_DESCRIPTIONS: dict[str, str] = {
        "send_message": "Send",
        "new_conversation": "New Chat",
        "quit": "Quit",
        "attach_file": "Attach",
        "dismiss_banner": "Dismiss",
        "dismiss_upload": "Dismiss Upload",
        "interrupt_stream": "Interrupt",
    }

    def __init__(
        self,
        config_path: Path | None = None,
        conversation_id: str | None = None,
        pipeline: ChatPipeline | None = None,
    ) -> None:
        self.config = load_config(config_path)
        self.window_title = str(self.config["app"]["title"])
        configure_logging(self.config["logging"])
        LOGGER.info(
            "app.python",
            extra={
                "event": "app.python",
                "executable": sys.executable,
                "version": sys.version.split()[0],
            },
        )
        self.pipeline = pipeline or ChatPipeline.from_config(
            self.config, navigator=self._navigate
        )
        if pipeline is not None and pipeline.coordinator.navigator is None:
            pipeline.coordinator.navigator = self._navigate
        self._initial_conversation = conversation_id
        self._refresh_pending = False
        self._binding_specs = self._binding_specs_from_config(self.config)
        super().__init__()

    @classmethod
    def _binding_specs_from_config(
        cls, config: dict[str, dict[str, Any]]
    ) -> list[Binding]:
        keybinds = config.get("keybinds", {})
        bindings: list[Binding] = []
        for action_name, description in cls.DEFAULT_ACTION_DESCRIPTIONS.items():
            binding_key = keybinds.get(action_name)
            if isinstance(binding_key, str) and binding_key.strip():
                bindings.append(
                    Binding(
                        key=binding_key.strip(),
                        action=action_name,
                        description=description,
                        show=True,
                    )
                )
        return bindings

    def compose(self) -> ComposeResult:
        ui = self.config["ui"]
        yield Header(name=self.window_title)
        with Container(id="app-root"):
            yield ConversationView(
                show_timestamps=bool(ui["show_timestamps"]),
                show_tokens=bool(ui["show_tokens"]),
                id="conversation",
            )
            yield QuotaBanner(id="quota_banner")
            yield UploadTray(id="upload_tray")
            yield InputBox(id="input_box")
            yield StatusBar(id="status_bar")
        yield Footer()

    async def on_mount(self) -> None:
        self.title = self.window_title
        for binding in self._binding_specs:
            self.bind(
                binding.key,
                binding.action,
                description=binding.description,
                show=binding.show,
            )
        self._w_input = self.query_one("#message_input", Input)
        self._w_conversation = self.query_one(ConversationView)
        self._w_banner = self.query_one(QuotaBanner)
        self._w_tray = self.query_one(UploadTray)
        self._w_status = self.query_one(StatusBar)

        self.pipeline.on_change(self._schedule_refresh)
        self.pipeline.reconciler.on_change(self._schedule_refresh)
        self.pipeline.uploads.on_change(self._schedule_refresh)
        await self._refresh_view()
        self._w_input.focus()

        if self._initial_conversation:
            self.pipeline.coordinator.select(self._initial_conversation)

    async def on_unmount(self) -> None:
        """Cancel the active turn and all uploads during shutdown."""
        await self.pipeline.aclose()

    def _navigate(self, route: str) -> None:
        self.sub_title = route
        conversation_id = route.rstrip("/").rsplit("/", 1)[-1]
        self.run_worker(
            self.pipeline.on_navigated(conversation_id),
            group="navigation",
            exit_on_error=False,
        )

    def _schedule_refresh(self) -> None:
        if self._refresh_pending:
            return
        self._refresh_pending = True
        self.call_later(self._refresh_view)

    async def _refresh_view(self) -> None:
        self._refresh_pending = False
        pipeline = self.pipeline
        messages = pipeline.reconciler.messages
        await self._w_conversation.sync(messages)
        self._w_banner.show(
            pipeline.quota_error, str(self.config["keybinds"]["dismiss_banner"])
        )
        self._w_tray.show(
            pipeline.uploads.uploading,
            pipeline.uploads.selected,
            str(self.config["keybinds"]["dismiss_upload"]),
        )
        self._w_status.set_status(
            turn_state=pipeline.turn_state.value,
            model=pipeline.model,
            conversation_id=pipeline.coordinator.current_conversation_id,
            message_count=len(messages),
        )
        if self._w_input.value != pipeline.draft:
            self._w_input.value = pipeline.draft
        if pipeline.last_error and not pipeline.reconciler.is_turn_active:
            self.sub_title = pipeline.last_error

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "message_input":
            self.pipeline.draft = event.value

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message_input":
            return
        event.stop()
        await self.action_send_message()

    async def on_input_box_send_requested(self, event: InputBox.SendRequested) -> None:
        event.stop()
        await self.action_send_message()

    async def on_input_box_attach_requested(
        self, event: InputBox.AttachRequested
    ) -> None:
        event.stop()
        await self.action_attach_file()

    async def action_send_message(self) -> None:
        text = self._w_input.value
        if not text.strip():
            return
        self.run_worker(self.pipeline.submit(text), group="turn", exit_on_error=False)

    async def action_interrupt_stream(self) -> None:
        if await self.pipeline.interrupt():
            self.sub_title = "Response interrupted."

    async def action_new_conversation(self) -> None:
        await self.pipeline.new_chat()
        self.sub_title = ""

    async def action_dismiss_banner(self) -> None:
        self.pipeline.dismiss_quota_error()

    async def action_dismiss_upload(self) -> None:
        """Dismiss one failed upload tile, newest first."""
        entry = self.pipeline.uploads.latest_failed()
        if entry is not None:
            await self.pipeline.uploads.dismiss(entry.temp_id)

    async def action_attach_file(self) -> None:
        await self.push_screen(
            AttachFileScreen(self.pipeline.uploads.max_file_bytes),
            callback=self._on_attach_paths,
        )

    def _on_attach_paths(self, paths: list[Path] | None) -> None:
        for path in paths or []:
            self.pipeline.uploads.start_upload(path)

    async def action_quit(self) -> None:
        self.exit()
