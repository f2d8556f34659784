#!/usr/bin/env python3
"""
sartwc control CLI

Command-line client for the compositor IPC socket.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from .config import resolve_socket_path
from .encoding import as_bytes, as_text, percent_decode_text, percent_encode
from .errors import EncodingError
from .ipc_server import SOCKET_ENV

console = Console()

SNAPSHOT_COMMANDS = ("list-views", "list-workspaces")

Snapshot = Tuple[Dict[str, str], List[Dict[str, str]]]


def parse_snapshot(text: str) -> Snapshot:
    """
    Parse a text snapshot (list-views / list-workspaces) response.

    Args:
        text: Response up to and including the END line

    Returns:
        (header fields, one dict per record line); values are percent-decoded
        when the header announces encoding=percent
    """
    header: Dict[str, str] = {}
    records: List[Dict[str, str]] = []

    for line in text.splitlines():
        if line == "END":
            break
        if line.startswith("ERROR "):
            raise RuntimeError(line[len("ERROR "):])

        kind, _, rest = line.partition(" ")
        if "=" in kind:
            key, _, value = line.partition("=")
            header[key] = value
            continue

        record = {"kind": kind}
        for token in rest.split(" "):
            key, sep, value = token.partition("=")
            if sep:
                record[key] = value
        records.append(record)

    if header.get("encoding") == "percent":
        header = {key: _decode(value) for key, value in header.items()}
        records = [{key: _decode(value) for key, value in record.items()} for record in records]

    return header, records


def _decode(value: str) -> str:
    try:
        return percent_decode_text(value)
    except EncodingError:
        return value


def format_workspace_table(snapshot: Snapshot) -> Table:
    """Format a list-workspaces snapshot as a Rich table."""
    header, records = snapshot
    table = Table(title="Workspaces", show_header=True, header_style="bold cyan")

    table.add_column("#", justify="right", style="yellow")
    table.add_column("Name", style="bold green")
    table.add_column("Active", justify="center")

    for record in records:
        table.add_row(
            record.get("index", ""),
            record.get("name", ""),
            "●" if record.get("active") == "1" else "",
        )

    table.caption = f"current: {header.get('current', '?')}"
    return table


def format_view_table(snapshot: Snapshot) -> Table:
    """Format a list-views snapshot as a Rich table."""
    header, records = snapshot
    table = Table(title="Views", show_header=True, header_style="bold cyan")

    table.add_column("App ID", style="bold green")
    table.add_column("Title")
    table.add_column("Workspace", style="blue")
    table.add_column("Geometry", style="dim")
    table.add_column("State", style="magenta")

    for record in records:
        states = [
            flag for flag in ("focused", "maximized", "minimized", "fullscreen", "tiled")
            if record.get(flag) == "1"
        ]
        table.add_row(
            record.get("app_id", ""),
            record.get("title", ""),
            f"{record.get('workspace', '0')} {record.get('workspace_name', '')}".strip(),
            f"{record.get('w')}x{record.get('h')}+{record.get('x')}+{record.get('y')}",
            ", ".join(states),
        )

    table.caption = (
        f"current workspace: {header.get('current_workspace', '?')} "
        f"{header.get('current_workspace_name', '')}"
    ).strip()
    return table


class ControlCLI:
    """CLI client for the sartwc IPC socket."""

    def __init__(self, socket_path: Optional[Path] = None):
        self.socket_path = socket_path or self._default_socket_path()

    @staticmethod
    def _default_socket_path() -> Optional[Path]:
        exported = os.environ.get(SOCKET_ENV)
        if exported:
            return Path(exported)
        return resolve_socket_path()

    async def _open(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if self.socket_path is None or not self.socket_path.exists():
            raise ConnectionError(f"Compositor not running (socket not found: {self.socket_path})")
        return await asyncio.open_unix_connection(str(self.socket_path))

    async def send_command(self, line: str) -> str:
        """
        Send one command line and read its complete response.

        Args:
            line: Command line without trailing newline

        Returns:
            Response text
        """
        reader, writer = await self._open()
        try:
            writer.write(as_bytes(line) + b"\n")
            await writer.drain()

            command = line.split(None, 1)[0].lower() if line.strip() else ""
            if command not in SNAPSHOT_COMMANDS:
                return as_text(await reader.readline())

            chunks = []
            while True:
                data = await reader.readline()
                if not data:
                    break
                chunks.append(as_text(data))
                if data == b"END\n" or data.startswith(b"ERROR "):
                    break
            return "".join(chunks)
        finally:
            writer.close()
            await writer.wait_closed()

    async def cmd_ping(self, args) -> int:
        response = await self.send_command("ping")
        return self._print_status(response)

    async def _print_json(self, command: str) -> int:
        response = await self.send_command(command)
        if not response.startswith("{"):
            return self._print_status(response)
        print(json.dumps(json.loads(response), indent=2, ensure_ascii=False))
        return 0

    async def cmd_workspaces(self, args) -> int:
        if args.json:
            return await self._print_json("list-workspaces-json")
        response = await self.send_command("list-workspaces")
        console.print(format_workspace_table(parse_snapshot(response)))
        return 0

    async def cmd_views(self, args) -> int:
        if args.json:
            return await self._print_json("list-views-json")
        response = await self.send_command("list-views")
        console.print(format_view_table(parse_snapshot(response)))
        return 0

    async def cmd_add(self, args) -> int:
        line = "workspace-add"
        if args.name:
            line += f" name={percent_encode(args.name)}"
        return self._print_status(await self.send_command(line))

    async def cmd_rename(self, args) -> int:
        line = f"workspace-rename index={args.index} name={percent_encode(args.name)}"
        return self._print_status(await self.send_command(line))

    async def cmd_remove(self, args) -> int:
        return self._print_status(await self.send_command(f"workspace-remove index={args.index}"))

    async def cmd_action(self, args) -> int:
        line = " ".join([args.name] + args.args)
        return self._print_status(await self.send_command(line))

    async def cmd_raw(self, args) -> int:
        response = await self.send_command(" ".join(args.line))
        sys.stdout.write(response)
        return 1 if response.startswith("ERROR") else 0

    async def cmd_monitor(self, args) -> int:
        """Subscribe to events and print them until the compositor goes away."""
        reader, writer = await self._open()
        try:
            writer.write(b"subscribe-events\n")
            await writer.drain()

            ack = as_text(await reader.readline()).rstrip("\n")
            if ack != "OK subscribed-events":
                console.print(f"[red]Subscription failed:[/red] {ack}")
                return 1

            console.print("[dim]Listening for events (Ctrl+C to stop)[/dim]")
            while True:
                data = await reader.readline()
                if not data:
                    console.print("[yellow]Connection closed[/yellow]")
                    return 0
                line = as_text(data).rstrip("\n")
                kind, _, fields = line.removeprefix("EVENT ").partition(" ")
                console.print(f"[bold cyan]{kind}[/bold cyan] {fields}", highlight=False)
        finally:
            writer.close()
            await writer.wait_closed()

    @staticmethod
    def _print_status(response: str) -> int:
        response = response.rstrip("\n")
        if response.startswith("OK"):
            console.print(f"[green]✅ {response}[/green]")
            return 0
        console.print(f"[red]❌ {response or 'no response'}[/red]")
        return 1

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="sartwc compositor control",
            prog="sartwcctl"
        )
        parser.add_argument("--socket", type=Path, help=f"IPC socket (default: ${SOCKET_ENV})")

        subparsers = parser.add_subparsers(dest="command", help="Command to execute")

        subparsers.add_parser("ping", help="Check if the compositor is responding")

        workspaces_parser = subparsers.add_parser("workspaces", help="List workspaces")
        workspaces_parser.add_argument("--json", action="store_true", help="Output as JSON")

        views_parser = subparsers.add_parser("views", help="List mapped views")
        views_parser.add_argument("--json", action="store_true", help="Output as JSON")

        add_parser = subparsers.add_parser("add", help="Add a workspace")
        add_parser.add_argument("name", nargs="?", default="", help="Workspace name (default: next number)")

        rename_parser = subparsers.add_parser("rename", help="Rename a workspace")
        rename_parser.add_argument("index", type=int, help="1-based workspace index")
        rename_parser.add_argument("name", help="New name")

        remove_parser = subparsers.add_parser("remove", help="Remove a workspace")
        remove_parser.add_argument("index", type=int, help="1-based workspace index")

        action_parser = subparsers.add_parser("action", help="Run a compositor action")
        action_parser.add_argument("name", help="Action name (e.g. GoToDesktop)")
        action_parser.add_argument("args", nargs="*", help="key=value arguments")

        raw_parser = subparsers.add_parser("raw", help="Send a raw protocol line")
        raw_parser.add_argument("line", nargs="+", help="Protocol line")

        subparsers.add_parser("monitor", help="Stream compositor events")

        return parser

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run CLI."""
        parser = self.build_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return 1

        if args.socket:
            self.socket_path = args.socket

        cmd_map = {
            "ping": self.cmd_ping,
            "workspaces": self.cmd_workspaces,
            "views": self.cmd_views,
            "add": self.cmd_add,
            "rename": self.cmd_rename,
            "remove": self.cmd_remove,
            "action": self.cmd_action,
            "raw": self.cmd_raw,
            "monitor": self.cmd_monitor,
        }

        try:
            return asyncio.run(cmd_map[args.command](args))
        except KeyboardInterrupt:
            print("\nInterrupted")
            return 130
        except (ConnectionError, OSError, RuntimeError) as e:
            console.print(f"[red]❌ Error: {e}[/red]")
            return 1


def main():
    """Main entry point."""
    cli = ControlCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
