"""
Pytest configuration and fixtures for the sartwc control plane tests.
"""

import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from sartwc_control.events import EventBroadcaster
from sartwc_control.headless import HeadlessCompositor
from sartwc_control.indicator import WorkspaceIndicator
from sartwc_control.ipc_server import IPCServer
from sartwc_control.persistence import WorkspaceStateStore
from sartwc_control.workspaces import WorkspaceRegistry


class RecordingConnection:
    """Stand-in for a client connection that records what it is sent."""

    def __init__(self, fail: bool = False):
        self.lines: List[str] = []
        self.fail = fail
        self.aborted = False
        self.subscribed = False
        self.peer = "test"

    def send(self, text: str) -> None:
        if self.fail or self.aborted:
            raise ConnectionResetError("connection is closing")
        self.lines.append(text)

    def abort(self) -> None:
        self.aborted = True

    def events(self, kind: str = "") -> List[str]:
        prefix = f"EVENT {kind}"
        return [line for line in self.lines if line.startswith(prefix)]


@pytest.fixture
def compositor() -> HeadlessCompositor:
    return HeadlessCompositor()


@pytest.fixture
def events() -> EventBroadcaster:
    return EventBroadcaster()


@pytest.fixture
def state_dir(tmp_path) -> Path:
    return tmp_path / "state" / "sartwc"


@pytest.fixture
def store(state_dir) -> WorkspaceStateStore:
    return WorkspaceStateStore(state_dir)


@pytest.fixture
def indicator(compositor) -> Generator[WorkspaceIndicator, None, None]:
    indicator = WorkspaceIndicator(
        compositor.renderer, compositor.keyboard, compositor.views, popup_time_ms=1000
    )
    yield indicator
    indicator.close()


@pytest.fixture
def registry(compositor, indicator, store, events) -> WorkspaceRegistry:
    """Registry wired to the headless compositor, starting with workspace "1"."""
    registry = WorkspaceRegistry(
        compositor.scene,
        compositor.views,
        compositor.groups,
        indicator,
        store,
        events,
    )
    compositor.views.attach(registry, events)
    compositor.actions.install_workspace_actions(
        registry, compositor.views, lambda: registry.reconfigure(["1"])
    )
    return registry


@pytest.fixture
def subscriber(events) -> RecordingConnection:
    connection = RecordingConnection()
    events.subscribe(connection)
    return connection


@pytest.fixture
def make_workspaces(registry):
    """Rename "1" and append so the registry holds exactly the given names."""

    def build(*names: str) -> None:
        registry.rename(1, names[0])
        for name in names[1:]:
            registry.add(name)

    return build


@pytest.fixture
def socket_dir() -> Generator[Path, None, None]:
    """Short temporary directory; UNIX socket paths are length limited."""
    with tempfile.TemporaryDirectory(prefix="sartwc-") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def server(registry, compositor, events, socket_dir) -> IPCServer:
    return IPCServer(
        registry,
        compositor.views,
        compositor.actions,
        events,
        socket_dir / "sartwc-wayland-1.sock",
    )


@pytest.fixture
def make_connection():
    """Factory for extra recording connections (pass fail=True for a broken one)."""
    return RecordingConnection
