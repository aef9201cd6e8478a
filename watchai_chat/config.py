"""Configuration loading and validation for the WatchAI chat client."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "watchaiterm"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

DEFAULT_DOCUMENT_TYPES: list[str] = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "text/csv",
    "text/html",
    "text/javascript",
    "text/css",
    "application/json",
    "application/javascript",
    "application/xml",
    "text/xml",
    "text/markdown",
]
DEFAULT_IMAGE_TYPES: list[str] = ["image/jpeg", "image/png", "image/gif", "image/webp"]


def _non_empty_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata and model selection."""

    model_config = ConfigDict(populate_by_name=True)
    title: str = "WatchAI"
    window_class: str = Field(default="watchaiterm", alias="class")
    model: str = "gemini-2.0-flash"
    models: list[str] = Field(default_factory=list)

    @field_validator("title", "window_class", "model", mode="before")
    @classmethod
    def _validate_non_empty_string(cls, value: Any) -> str:
        return _non_empty_string(value)

    @field_validator("models", mode="before")
    @classmethod
    def _validate_models(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("models must be a list of model ids.")
        normalized: list[str] = []
        for item in value:
            candidate = _non_empty_string(item)
            if candidate not in normalized:
                normalized.append(candidate)
        return normalized

    @model_validator(mode="after")
    def _normalize_model_list(self) -> AppConfig:
        if self.model not in self.models:
            self.models.insert(0, self.model)
        return self


class ServerConfig(BaseModel):
    """WatchAI endpoint, transport, and route settings."""

    base_url: str = "http://localhost:3000/api"
    timeout: int = Field(default=120, ge=1, le=3600)
    headers: dict[str, str] = Field(default_factory=dict)
    quota_path: str = "/quota"
    conversations_path: str = "/conversations"
    chat_path: str = "/chat"
    upload_path: str = "/files/upload"

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        normalized = _non_empty_string(value).rstrip("/")
        parsed = urlparse(normalized)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise ValueError("server.base_url must use http or https scheme.")
        if not parsed.hostname:
            raise ValueError("server.base_url must include a hostname.")
        return normalized

    @field_validator(
        "quota_path", "conversations_path", "chat_path", "upload_path", mode="before"
    )
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        normalized = _non_empty_string(value)
        if not normalized.startswith("/"):
            normalized = "/" + normalized
        return normalized.rstrip("/") or "/"

    @field_validator("headers", mode="before")
    @classmethod
    def _validate_headers(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("headers must be a table of name -> value.")
        headers: dict[str, str] = {}
        for k, v in value.items():
            if not isinstance(k, str) or not k.strip() or not isinstance(v, str):
                raise ValueError("headers must map non-empty names to strings.")
            headers[k.strip()] = v
        return headers


class StreamConfig(BaseModel):
    """Response stream decoding and user-facing turn messages."""

    buffer_partial_lines: bool = True
    failure_message: str = "⚠️ เกิดข้อผิดพลาดในการส่งข้อความ กรุณาลองใหม่อีกครั้ง"
    quota_default_message: str = "โควต้าหมดแล้ว กรุณาลองใหม่ภายหลัง"
    interrupted_message: str = "(Response interrupted.)"

    @field_validator(
        "failure_message", "quota_default_message", "interrupted_message", mode="before"
    )
    @classmethod
    def _validate_message(cls, value: Any) -> str:
        return _non_empty_string(value)


class UploadsConfig(BaseModel):
    """Client-side upload limits."""

    max_file_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    allowed_document_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOCUMENT_TYPES)
    )
    allowed_image_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IMAGE_TYPES)
    )
    progress_chunk_bytes: int = Field(default=64 * 1024, ge=1024, le=16 * 1024 * 1024)

    @field_validator("allowed_document_types", "allowed_image_types", mode="before")
    @classmethod
    def _validate_types(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("MIME type allow-lists must be lists.")
        return [
            item.strip().lower()
            for item in value
            if isinstance(item, str) and item.strip()
        ]


class UIConfig(BaseModel):
    """Visual settings for Textual rendering."""

    show_timestamps: bool = True
    show_tokens: bool = True


class KeybindsConfig(BaseModel):
    """Keyboard action mapping."""

    send_message: str = "ctrl+enter"
    new_conversation: str = "ctrl+n"
    quit: str = "ctrl+q"
    attach_file: str = "ctrl+o"
    dismiss_banner: str = "ctrl+d"
    dismiss_upload: str = "ctrl+x"
    interrupt_stream: str = "escape"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_keybind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Keybind must be a string.")
        return value.strip()


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/watchaiterm/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _non_empty_string(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    server: ServerConfig = ServerConfig()
    stream: StreamConfig = StreamConfig()
    uploads: UploadsConfig = UploadsConfig()
    ui: UIConfig = UIConfig()
    keybinds: KeybindsConfig = KeybindsConfig()
    logging: LoggingConfig = LoggingConfig()


def _build_default_config() -> dict[str, dict[str, Any]]:
    """Build default config with an empty models list for clean merging."""
    data = Config().model_dump(by_alias=True)
    # A partial TOML that only sets `model` must not inherit the default id
    # through the normalised models list.
    data["app"]["models"] = []
    return data


DEFAULT_CONFIG: dict[str, dict[str, Any]] = _build_default_config()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a validated copy of the default config."""
    return Config().model_dump(by_alias=True)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    return _validate_config(merged)
