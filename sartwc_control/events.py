"""Event broadcasting to subscribed IPC clients.

Each event is a single line ``EVENT <kind> key=value ...`` written to every
connection that sent ``subscribe-events``. A failed write drops only that
subscriber.
"""

import logging
from typing import TYPE_CHECKING, Optional, Set

from .models import View

if TYPE_CHECKING:
    from .connection import Connection
    from .workspaces import WorkspaceRegistry

logger = logging.getLogger(__name__)

WORKSPACE_CHANGED = "workspace-changed"
WORKSPACE_LIST_CHANGED = "workspace-list-changed"
FOCUS_CHANGED = "focus-changed"
VIEW_MAPPED = "view-mapped"
VIEW_UNMAPPED = "view-unmapped"


class EventBroadcaster:
    """Pushes compositor change notifications to subscribed connections."""

    def __init__(self) -> None:
        self.subscribers: Set["Connection"] = set()
        self.sent_count = 0

    def subscribe(self, connection: "Connection") -> None:
        self.subscribers.add(connection)
        logger.info(f"Client subscribed to events (total subscribers: {len(self.subscribers)})")

    def unsubscribe(self, connection: "Connection") -> None:
        self.subscribers.discard(connection)

    def broadcast(self, event: str) -> None:
        """Send one event line to every subscriber.

        Args:
            event: Event kind followed by its key=value fields
        """
        if not self.subscribers:
            return

        line = f"EVENT {event}\n"
        logger.debug(f"Broadcasting to {len(self.subscribers)} subscriber(s): {event}")

        for connection in list(self.subscribers):
            try:
                connection.send(line)
                self.sent_count += 1
            except (ConnectionError, OSError, RuntimeError) as e:
                logger.warning(f"Failed to send event to {connection}: {e}")
                self.subscribers.discard(connection)
                connection.abort()

    def workspace_changed(self, registry: "WorkspaceRegistry") -> None:
        self.broadcast(f"{WORKSPACE_CHANGED} current={registry.current_index()}")

    def workspace_list_changed(self, registry: "WorkspaceRegistry") -> None:
        self.broadcast(
            f"{WORKSPACE_LIST_CHANGED} current={registry.current_index()} count={len(registry)}"
        )

    def focus_changed(self, registry: "WorkspaceRegistry", view: Optional[View]) -> None:
        """Called by the host after keyboard focus moved (view is None when nothing is focused)."""
        current = registry.current_index()
        if view is None:
            self.broadcast(f"{FOCUS_CHANGED} current={current} focused=0")
        else:
            self.broadcast(f"{FOCUS_CHANGED} current={current} focused=1 {_view_fields(registry, view)}")

    def view_mapped(self, registry: "WorkspaceRegistry", view: View) -> None:
        self.broadcast(f"{VIEW_MAPPED} current={registry.current_index()} {_view_fields(registry, view)}")

    def view_unmapped(self, registry: "WorkspaceRegistry", view: View) -> None:
        self.broadcast(f"{VIEW_UNMAPPED} current={registry.current_index()} {_view_fields(registry, view)}")


def _view_fields(registry: "WorkspaceRegistry", view: View) -> str:
    geo = view.current
    return (
        f"view={view.id} workspace={registry.index_of(view.workspace)} "
        f"x={geo.x} y={geo.y} w={geo.width} h={geo.height}"
    )
