"""Line-protocol IPC server for the compositor control plane.

Listens on a UNIX socket. Every request is one newline-terminated line,
answered with ``OK``, ``ERROR <reason>`` or a snapshot payload; subscribed
connections additionally receive ``EVENT`` lines (see events.py).

Commands:
    ping                               - connection test
    subscribe-events                   - stream EVENT lines on changes
    list-views / list-views-json       - mapped views with geometry
    list-workspaces / list-workspaces-json
    workspace-add [name=...]           - name may be percent-encoded
    workspace-rename index=N name=...  - name may be percent-encoded
    workspace-remove index=N
    <Action> [key=value ...]           - run a compositor action
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from .compositor import ActionExecutor, ViewManager
from .connection import Connection
from .encoding import as_text, json_line, percent_decode_text, percent_encode
from .errors import ControlError, EncodingError, ErrorCode, ProtocolError, WorkspaceError
from .events import EventBroadcaster
from .models import View
from .workspaces import WorkspaceRegistry

logger = logging.getLogger(__name__)

SOCKET_ENV = "SARTWC_IPC_SOCKET"

_TOKEN_SEPARATOR = re.compile(r"[ \t]+")
_INDEX_VALUE = re.compile(r"[0-9]+")

RENAME_USAGE = "usage: workspace-rename index=N name=..."
REMOVE_USAGE = "usage: workspace-remove index=N"


def _flag(value: bool) -> int:
    return 1 if value else 0


def _parse_args(tokens: List[str], fold_keys: bool = False) -> Dict[str, str]:
    """Collect key=value tokens; tokens without '=' are ignored, last key wins."""
    args: Dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep:
            continue
        args[key.lower() if fold_keys else key] = value
    return args


def _parse_index(value: Optional[str]) -> int:
    """1-based index argument, or 0 if absent or not a plain number."""
    if value is None or not _INDEX_VALUE.fullmatch(value):
        return 0
    return int(value)


class IPCServer:
    """UNIX socket server dispatching text commands to the control plane."""

    def __init__(
        self,
        registry: WorkspaceRegistry,
        views: ViewManager,
        actions: ActionExecutor,
        events: EventBroadcaster,
        socket_path: Optional[Path] = None,
    ) -> None:
        """Initialize IPC server.

        Args:
            registry: Workspace registry the workspace commands act on
            views: View manager for the view snapshots
            actions: Executor for every command that is not built in
            events: Broadcaster holding the event subscribers
            socket_path: Where to listen; None disables the server
        """
        self.registry = registry
        self.views = views
        self.actions = actions
        self.events = events
        self.socket_path = socket_path
        self.server: Optional[asyncio.AbstractServer] = None
        self.connections: Set[Connection] = set()

    async def start(self) -> bool:
        """Bind the socket and start accepting clients.

        Returns:
            True if the server is listening
        """
        if self.socket_path is None:
            logger.error("XDG_RUNTIME_DIR or WAYLAND_DISPLAY not set, IPC disabled")
            return False

        socket_path = self.socket_path

        # Remove stale socket from a previous run
        try:
            socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove stale IPC socket {socket_path}: {e}")
            return False

        try:
            self.server = await asyncio.start_unix_server(
                self._handle_client, path=str(socket_path)
            )
        except OSError as e:
            logger.error(f"Failed to bind IPC socket {socket_path}: {e}")
            return False

        try:
            socket_path.chmod(0o600)
        except OSError as e:
            logger.error(f"Failed to restrict permissions on IPC socket {socket_path}: {e}")
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            self._remove_socket()
            return False

        os.environ[SOCKET_ENV] = str(socket_path)

        logger.info(f"IPC server listening on {socket_path} (permissions: 0600)")
        return True

    async def stop(self) -> None:
        """Stop IPC server and force-close all connections."""
        if self.server:
            self.server.close()

        for connection in list(self.connections):
            connection.abort()
        self.connections.clear()

        if self.server:
            await self.server.wait_closed()
            self.server = None

        self._remove_socket()

        logger.info("IPC server stopped")

    def _remove_socket(self) -> None:
        if self.socket_path is None:
            return
        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove IPC socket {self.socket_path}: {e}")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Handle a client connection.

        Args:
            reader: Stream reader for receiving requests
            writer: Stream writer for sending responses
        """
        connection = Connection(reader, writer)
        self.connections.add(connection)
        logger.debug(f"Client connected: {connection.peer}")

        try:
            while True:
                data = await connection.read()
                if not data:
                    break

                try:
                    lines = connection.feed(data)
                except ProtocolError as e:
                    logger.warning(f"Disconnecting client {connection.peer}: {e.message}")
                    connection.send(e.to_line())
                    break

                for line in lines:
                    response = self.handle_command(connection, as_text(line))
                    if response:
                        connection.send(response)

                await connection.drain()

        except (ConnectionError, OSError) as e:
            logger.debug(f"Client {connection.peer} connection error: {e}")

        finally:
            self.connections.discard(connection)
            self.events.unsubscribe(connection)
            await connection.close()
            logger.debug(f"Client disconnected: {connection.peer}")

    def handle_command(self, connection: Connection, line: str) -> str:
        """Execute one command line.

        Args:
            connection: Client the line came from
            line: Request without its line feed

        Returns:
            Complete response text, or "" for a blank line
        """
        line = line.strip()
        if not line:
            return ""

        tokens = _TOKEN_SEPARATOR.split(line)
        command = tokens[0].lower()
        logger.debug(f"IPC command from {connection.peer}: {command}")

        try:
            return self._dispatch(connection, command, tokens)
        except ControlError as e:
            logger.debug(f"Command {command} failed: {e.to_dict()}")
            return e.to_line()
        except Exception as e:
            logger.error(f"Error handling IPC command {command}: {e}", exc_info=True)
            return ControlError(ErrorCode.INTERNAL_ERROR, "internal error").to_line()

    def _dispatch(self, connection: Connection, command: str, tokens: List[str]) -> str:
        if command == "ping":
            return "OK\n"

        if command == "subscribe-events":
            connection.subscribed = True
            self.events.subscribe(connection)
            return "OK subscribed-events\n"

        if command == "list-views":
            return self.views_text()
        if command == "list-views-json":
            return json_line(self.views_document())
        if command == "list-workspaces":
            return self.workspaces_text()
        if command == "list-workspaces-json":
            return json_line(self.workspaces_document())

        if command == "workspace-add":
            return self._workspace_add(_parse_args(tokens[1:], fold_keys=True))
        if command == "workspace-rename":
            return self._workspace_rename(_parse_args(tokens[1:], fold_keys=True))
        if command == "workspace-remove":
            return self._workspace_remove(_parse_args(tokens[1:], fold_keys=True))

        return self._run_action(tokens[0], _parse_args(tokens[1:]))

    # Workspace commands

    def _decode_name(self, raw: str) -> str:
        try:
            return percent_decode_text(raw)
        except EncodingError as e:
            raise ProtocolError("invalid percent-encoding in name", ErrorCode.INVALID_PERCENT_ENCODING) from e

    def _workspace_add(self, args: Dict[str, str]) -> str:
        name = self._decode_name(args.get("name", ""))
        try:
            self.registry.add(name)
        except WorkspaceError as e:
            logger.warning(f"workspace-add rejected: {e.message}")
            raise WorkspaceError(e.code, "failed to add workspace", e.context) from e
        return "OK\n"

    def _workspace_rename(self, args: Dict[str, str]) -> str:
        index = _parse_index(args.get("index"))
        raw_name = args.get("name", "")
        if index < 1 or not raw_name:
            raise ProtocolError(RENAME_USAGE, ErrorCode.USAGE)

        name = self._decode_name(raw_name)
        try:
            self.registry.rename(index, name)
        except WorkspaceError as e:
            logger.warning(f"workspace-rename rejected: {e.message}")
            raise WorkspaceError(e.code, "failed to rename workspace", e.context) from e
        return "OK\n"

    def _workspace_remove(self, args: Dict[str, str]) -> str:
        index = _parse_index(args.get("index"))
        if index < 1:
            raise ProtocolError(REMOVE_USAGE, ErrorCode.USAGE)

        try:
            self.registry.remove(index)
        except WorkspaceError as e:
            logger.warning(f"workspace-remove rejected: {e.message}")
            raise WorkspaceError(e.code, "failed to remove workspace", e.context) from e
        return "OK\n"

    def _run_action(self, name: str, args: Dict[str, str]) -> str:
        self.actions.validate(name, args)
        self.actions.run(name, args)
        return "OK\n"

    # Snapshots

    def _listed_views(self) -> List[View]:
        return [view for view in self.views.views() if view.mapped]

    def views_text(self) -> str:
        registry = self.registry
        active = self.views.active_view
        lines = [
            f"current_workspace={registry.current_index()}",
            "encoding=percent",
            f"current_workspace_name={percent_encode(registry.current.name)}",
        ]

        for view in self._listed_views():
            workspace_name = view.workspace.name if view.workspace else ""
            geo = view.current
            lines.append(
                f"view app_id={percent_encode(view.app_id)} title={percent_encode(view.title)}"
                f" workspace={registry.index_of(view.workspace)}"
                f" workspace_name={percent_encode(workspace_name)}"
                f" x={geo.x} y={geo.y} w={geo.width} h={geo.height}"
                f" maximized={_flag(view.maximized)} minimized={_flag(view.minimized)}"
                f" fullscreen={_flag(view.fullscreen)} tiled={_flag(view.tiled)}"
                f" focused={_flag(view is active)}"
            )

        lines.append("END")
        return "\n".join(lines) + "\n"

    def views_document(self) -> Dict[str, Any]:
        registry = self.registry
        active = self.views.active_view
        views = []

        for view in self._listed_views():
            geo = view.current
            usable = view.usable_area if view.output else None
            views.append({
                "app_id": view.app_id,
                "title": view.title,
                "workspace": registry.index_of(view.workspace),
                "workspace_name": view.workspace.name if view.workspace else "",
                "x": geo.x,
                "y": geo.y,
                "w": geo.width,
                "h": geo.height,
                "output": view.output,
                "usable_x": usable.x if usable else 0,
                "usable_y": usable.y if usable else 0,
                "usable_w": usable.width if usable else 0,
                "usable_h": usable.height if usable else 0,
                "maximized": view.maximized,
                "minimized": view.minimized,
                "fullscreen": view.fullscreen,
                "tiled": view.tiled,
                "focused": view is active,
            })

        return {
            "current_workspace": registry.current_index(),
            "current_workspace_name": registry.current.name,
            "views": views,
        }

    def workspaces_text(self) -> str:
        registry = self.registry
        lines = [f"current={registry.current_index()}", "encoding=percent"]
        for index, workspace in enumerate(registry, start=1):
            lines.append(
                f"workspace index={index} name={percent_encode(workspace.name)}"
                f" active={_flag(workspace is registry.current)}"
            )
        lines.append("END")
        return "\n".join(lines) + "\n"

    def workspaces_document(self) -> Dict[str, Any]:
        registry = self.registry
        return {
            "current_workspace": registry.current_index(),
            "current_workspace_name": registry.current.name,
            "workspaces": [
                {
                    "index": index,
                    "name": workspace.name,
                    "active": workspace is registry.current,
                }
                for index, workspace in enumerate(registry, start=1)
            ],
        }
