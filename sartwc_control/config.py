"""Configuration for the control plane.

Two layers:
- RuntimeSettings: paths and log level resolved from the environment
- DeclaredConfig: the user's declared workspaces (JSON file, hot reloaded)
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

APP_NAME = "sartwc"
CONFIG_FILE_NAME = "workspaces.json"


def resolve_socket_path(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """$XDG_RUNTIME_DIR/sartwc-$WAYLAND_DISPLAY.sock, or None if either is unset."""
    env = os.environ if environ is None else environ
    runtime_dir = env.get("XDG_RUNTIME_DIR")
    display = env.get("WAYLAND_DISPLAY")
    if not runtime_dir or not display:
        return None
    return Path(runtime_dir) / f"{APP_NAME}-{display}.sock"


def resolve_state_dir(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """$XDG_STATE_HOME/sartwc, else $HOME/.local/state/sartwc, else None."""
    env = os.environ if environ is None else environ
    state_home = env.get("XDG_STATE_HOME")
    if state_home:
        return Path(state_home) / APP_NAME
    home = env.get("HOME")
    if home:
        return Path(home) / ".local" / "state" / APP_NAME
    return None


def resolve_config_file(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """$XDG_CONFIG_HOME/sartwc/workspaces.json, else under $HOME/.config."""
    env = os.environ if environ is None else environ
    config_home = env.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / APP_NAME / CONFIG_FILE_NAME
    home = env.get("HOME")
    if home:
        return Path(home) / ".config" / APP_NAME / CONFIG_FILE_NAME
    return None


@dataclass
class RuntimeSettings:
    """Settings resolved once at daemon startup."""

    socket_path: Optional[Path]
    state_dir: Optional[Path]
    config_file: Optional[Path]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeSettings":
        env = os.environ if environ is None else environ
        return cls(
            socket_path=resolve_socket_path(env),
            state_dir=resolve_state_dir(env),
            config_file=resolve_config_file(env),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


class DeclaredConfig(BaseModel):
    """Declared workspace configuration."""

    workspaces: List[str] = Field(
        default_factory=lambda: ["1"],
        min_length=1,
        description="Workspace names in display order",
    )
    popup_time_ms: int = Field(1000, ge=0, description="Indicator auto-hide delay (0 disables it)")

    @field_validator("workspaces")
    @classmethod
    def validate_workspaces(cls, v: List[str]) -> List[str]:
        """Names must be non-empty and fit on one line of the state file."""
        for name in v:
            if not name:
                raise ValueError("Workspace name cannot be empty")
            if "\n" in name or "\r" in name:
                raise ValueError(f"Workspace name cannot contain line breaks: {name!r}")
        return v


def load_declared_config(path: Optional[Path]) -> DeclaredConfig:
    """Load the declared configuration, falling back to defaults.

    Args:
        path: JSON config file

    Returns:
        Parsed configuration, or defaults if the file is missing or invalid
    """
    if path is None or not path.exists():
        logger.info(f"No workspace configuration at {path}, using defaults")
        return DeclaredConfig()

    try:
        with open(path) as f:
            data = json.load(f)
        config = DeclaredConfig.model_validate(data)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read workspace configuration {path}: {e}")
        return DeclaredConfig()
    except ValidationError as e:
        logger.error(f"Invalid workspace configuration {path}: {e}")
        return DeclaredConfig()

    logger.info(f"Loaded {len(config.workspaces)} declared workspace(s) from {path}")
    return config


class DebouncedReloadHandler(FileSystemEventHandler):
    """Debounces bursts of file events into one callback on the event loop.

    Watchdog delivers events on its observer thread; the debounce timer and
    the callback run on the asyncio loop.
    """

    def __init__(self, callback: Callable[[], None], target_filename: str, debounce_ms: int = 100):
        super().__init__()
        self.callback = callback
        self.target_filename = target_filename
        self.debounce_seconds = debounce_ms / 1000
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def _should_trigger(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        # Atomic saves show up as a move onto the target
        event_path = getattr(event, "dest_path", None) or event.src_path
        return Path(event_path).name == self.target_filename

    def _handle(self, event: FileSystemEvent) -> None:
        if not self._should_trigger(event):
            return
        if self._loop is None:
            logger.warning("No event loop set for config watcher, ignoring change")
            return
        self._loop.call_soon_threadsafe(self._schedule_callback)

    on_modified = _handle
    on_created = _handle
    on_moved = _handle

    def _schedule_callback(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self.callback()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ConfigFileWatcher:
    """Watches the declared configuration file and reports changes.

    The parent directory is watched, since editors commonly save by writing
    a temporary file and renaming it over the original.
    """

    def __init__(self, config_file: Path, callback: Callable[[], None], debounce_ms: int = 100):
        self.config_file = config_file
        self.observer = Observer()
        self.handler = DebouncedReloadHandler(callback, config_file.name, debounce_ms)
        self._started = False

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self.handler.set_event_loop(loop)

    def start(self) -> None:
        if self._started:
            logger.warning("Config watcher already started")
            return

        watch_dir = self.config_file.parent
        watch_dir.mkdir(parents=True, exist_ok=True)

        self.observer.schedule(self.handler, str(watch_dir), recursive=False)
        self.observer.start()
        self._started = True

        logger.info(f"Started watching {self.config_file} for modifications")

    def stop(self) -> None:
        if not self._started:
            return

        self.handler.cancel()
        self.observer.stop()
        self.observer.join(timeout=5.0)
        self._started = False

        logger.info(f"Stopped watching {self.config_file}")
