"""Main daemon entry point with systemd integration.

Owns the event loop: builds the workspace registry on top of the headless
compositor, serves the IPC socket and hot-reloads the declared workspace
configuration.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

try:
    from systemd import journal, daemon as sd_daemon
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from .config import ConfigFileWatcher, DeclaredConfig, RuntimeSettings, load_declared_config
from .events import EventBroadcaster
from .headless import HeadlessCompositor
from .indicator import WorkspaceIndicator
from .ipc_server import IPCServer
from .persistence import WorkspaceStateStore
from .workspaces import WorkspaceRegistry

logger = logging.getLogger(__name__)


class DaemonHealthMonitor:
    """Manages systemd health notifications and watchdog pings."""

    def __init__(self) -> None:
        self.watchdog_interval: Optional[float] = None
        self._setup_watchdog()

    def _setup_watchdog(self) -> None:
        if not SYSTEMD_AVAILABLE:
            return

        watchdog_usec = os.environ.get("WATCHDOG_USEC")
        if watchdog_usec:
            # Ping at a third of the timeout
            self.watchdog_interval = int(watchdog_usec) / 3_000_000
            logger.info(f"Systemd watchdog enabled: {self.watchdog_interval:.1f}s interval")
        else:
            logger.debug("Systemd watchdog not configured")

    def notify_ready(self) -> None:
        """Send READY=1 signal to systemd."""
        if SYSTEMD_AVAILABLE:
            sd_daemon.notify("READY=1")
            logger.info("Sent READY=1 to systemd")
        else:
            logger.debug("Systemd not available, skipping READY notification")

    def notify_stopping(self) -> None:
        """Send STOPPING=1 signal to systemd."""
        if SYSTEMD_AVAILABLE:
            sd_daemon.notify("STOPPING=1")
            logger.info("Sent STOPPING=1 to systemd")

    async def watchdog_loop(self) -> None:
        """Background task that sends watchdog pings."""
        if not self.watchdog_interval:
            return

        while True:
            await asyncio.sleep(self.watchdog_interval)
            sd_daemon.notify("WATCHDOG=1")


class ControlDaemon:
    """Control plane daemon: registry, IPC server and config watcher."""

    def __init__(self, settings: RuntimeSettings, compositor: Optional[HeadlessCompositor] = None) -> None:
        self.settings = settings
        self.compositor = compositor or HeadlessCompositor()
        self.events = EventBroadcaster()
        self.declared = DeclaredConfig()
        self.registry: Optional[WorkspaceRegistry] = None
        self.indicator: Optional[WorkspaceIndicator] = None
        self.ipc_server: Optional[IPCServer] = None
        self.config_watcher: Optional[ConfigFileWatcher] = None
        self.health_monitor: Optional[DaemonHealthMonitor] = None
        self.shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """Initialize daemon components."""
        logger.info("Initializing sartwc control daemon...")
        loop = asyncio.get_running_loop()
        compositor = self.compositor

        self.health_monitor = DaemonHealthMonitor()
        self.declared = load_declared_config(self.settings.config_file)

        self.indicator = WorkspaceIndicator(
            compositor.renderer,
            compositor.keyboard,
            compositor.views,
            popup_time_ms=self.declared.popup_time_ms,
            loop=loop,
        )

        if self.settings.state_dir is None:
            logger.warning("Neither XDG_STATE_HOME nor HOME is set, workspace persistence disabled")

        self.registry = WorkspaceRegistry(
            compositor.scene,
            compositor.views,
            compositor.groups,
            self.indicator,
            WorkspaceStateStore(self.settings.state_dir),
            self.events,
        )
        compositor.views.attach(self.registry, self.events)
        compositor.actions.install_workspace_actions(self.registry, compositor.views, self.reload_config)
        # Declared workspaces only apply on reload; a launch always starts with "1"

        self.ipc_server = IPCServer(
            self.registry,
            compositor.views,
            compositor.actions,
            self.events,
            self.settings.socket_path,
        )
        await self.ipc_server.start()

        if self.settings.config_file is not None:
            self.config_watcher = ConfigFileWatcher(self.settings.config_file, self.reload_config)
            self.config_watcher.set_event_loop(loop)
            try:
                self.config_watcher.start()
            except OSError as e:
                logger.error(f"Failed to watch {self.settings.config_file}: {e}")
                self.config_watcher = None

        logger.info("Daemon initialized")

    def reload_config(self) -> None:
        """Re-read the declared configuration and reconcile the registry."""
        logger.info("Reloading workspace configuration")
        self.declared = load_declared_config(self.settings.config_file)
        if self.indicator:
            self.indicator.popup_time_ms = self.declared.popup_time_ms
        if self.registry:
            self.registry.reconfigure(self.declared.workspaces)

    async def run(self) -> None:
        """Serve until a shutdown signal arrives."""
        if self.health_monitor:
            self.health_monitor.notify_ready()

        watchdog_task = None
        if self.health_monitor and self.health_monitor.watchdog_interval:
            watchdog_task = asyncio.create_task(self.health_monitor.watchdog_loop())

        try:
            await self.shutdown_event.wait()
        finally:
            if watchdog_task:
                watchdog_task.cancel()

    async def shutdown(self) -> None:
        """Graceful shutdown with timeouts to prevent hanging."""
        logger.info("Shutting down daemon...")

        if self.health_monitor:
            self.health_monitor.notify_stopping()

        if self.config_watcher:
            self.config_watcher.stop()

        if self.ipc_server:
            try:
                await asyncio.wait_for(self.ipc_server.stop(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("IPC server shutdown timed out after 5s (continuing)")

        if self.registry:
            self.registry.close()

        logger.info("Daemon shutdown complete")

    def setup_signal_handlers(self) -> None:
        """SIGTERM/SIGINT shut down, SIGHUP reloads the configuration."""
        loop = asyncio.get_running_loop()

        def shutdown_handler(signum: int) -> None:
            logger.info(f"Received signal {signum}, initiating shutdown...")
            self.shutdown_event.set()

        loop.add_signal_handler(signal.SIGTERM, shutdown_handler, signal.SIGTERM)
        loop.add_signal_handler(signal.SIGINT, shutdown_handler, signal.SIGINT)
        loop.add_signal_handler(signal.SIGHUP, self.reload_config)


def setup_logging(log_level: str = "INFO") -> None:
    """Setup logging to systemd journal or stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if SYSTEMD_AVAILABLE:
        handler = journal.JournalHandler(SYSLOG_IDENTIFIER="sartwc-control")
    else:
        handler = logging.StreamHandler(sys.stderr)

    formatter = logging.Formatter(
        "%(levelname)s [%(name)s] %(message)s"
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logger.info(f"Logging configured: level={log_level}")


async def main_async(settings: RuntimeSettings) -> int:
    """Async main function.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    daemon = ControlDaemon(settings)

    try:
        daemon.setup_signal_handlers()
        await daemon.initialize()
        await daemon.run()
        await daemon.shutdown()
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


def main() -> None:
    """Main entry point."""
    settings = RuntimeSettings.from_env()
    setup_logging(settings.log_level)

    logger.info("sartwc control daemon starting...")
    logger.info(f"PID: {os.getpid()}")
    logger.info(f"Config file: {settings.config_file}")

    try:
        exit_code = asyncio.run(main_async(settings))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
