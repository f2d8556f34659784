"""
Tests for daemon startup, configuration reload and shutdown.
"""

import json

import pytest

from sartwc_control.config import RuntimeSettings
from sartwc_control.daemon import ControlDaemon
from sartwc_control.ipc_server import SOCKET_ENV

@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config" / "sartwc" / "workspaces.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"workspaces": ["web", "mail"], "popup_time_ms": 0}))
    return path

@pytest.fixture(autouse=True)
def socket_env(monkeypatch):
    monkeypatch.setenv(SOCKET_ENV, "unset")

@pytest.mark.asyncio
async def test_startup_keeps_single_workspace_with_persistence(tmp_path, socket_dir, config_file):
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    (state_dir / "workspaces.txt").write_text("stale\nnames\n")
    settings = RuntimeSettings(
        socket_path=socket_dir / "sartwc-wayland-1.sock",
        state_dir=state_dir,
        config_file=config_file,
    )
    daemon = ControlDaemon(settings)

    await daemon.initialize()
    try:
        assert daemon.registry.names() == ["1"]
        assert (state_dir / "workspaces.txt").read_text() == "1\n"
        assert daemon.indicator.popup_time_ms == 0
        assert settings.socket_path.exists()
    finally:
        await daemon.shutdown()

    assert not settings.socket_path.exists()
    assert len(daemon.registry) == 0

@pytest.mark.asyncio
async def test_declared_workspaces_apply_on_reload_only(socket_dir, config_file):
    settings = RuntimeSettings(
        socket_path=socket_dir / "sartwc-wayland-1.sock",
        state_dir=None,
        config_file=config_file,
    )
    daemon = ControlDaemon(settings)

    await daemon.initialize()
    try:
        assert daemon.registry.names() == ["1"]

        daemon.reload_config()
        assert daemon.registry.names() == ["web", "mail"]

        config_file.write_text(json.dumps({"workspaces": ["web", "mail", "chat"]}))
        daemon.reload_config()

        assert daemon.registry.names() == ["web", "mail", "chat"]
        assert daemon.indicator.popup_time_ms == 1000
    finally:
        await daemon.shutdown()


@pytest.mark.asyncio
async def test_runs_without_socket_or_config(tmp_path):
    daemon = ControlDaemon(RuntimeSettings(socket_path=None, state_dir=tmp_path, config_file=None))

    await daemon.initialize()
    try:
        assert daemon.registry.names() == ["1"]
        assert daemon.config_watcher is None
    finally:
        await daemon.shutdown()
