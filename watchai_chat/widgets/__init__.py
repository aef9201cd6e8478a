"""Widget exports for watchai_chat UI."""

from .conversation import ConversationView
from .input_box import InputBox
from .message import MessageBubble
from .status_bar import StatusBar
from .upload_tray import QuotaBanner, UploadTray

__all__ = [
    "ConversationView",
    "InputBox",
    "MessageBubble",
    "QuotaBanner",
    "StatusBar",
    "UploadTray",
]
