"""Workspace registry.

Owns the ordered workspace collection together with the ``current`` and
``last`` pointers, and implements every operation that changes them:
switching, add/rename/remove, declarative reconfiguration and activate
requests from the workspace-group protocols.

All methods run on the event loop thread. Every successful shape or name
change is persisted and announced with a workspace-list-changed event.
"""

import itertools
import logging
import re
from typing import Iterator, List, Optional, Sequence

from .compositor import SceneGraph, ViewManager, WorkspaceGroup
from .errors import ErrorCode, WorkspaceError
from .events import EventBroadcaster
from .indicator import WorkspaceIndicator
from .models import Workspace
from .persistence import WorkspaceStateStore

logger = logging.getLogger(__name__)

INITIAL_WORKSPACE_NAME = "1"

_INDEX_PATTERN = re.compile(r"[0-9]+")


def parse_workspace_index(name: str) -> int:
    """Interpret a target as a 1-based index.

    Only strings made entirely of ASCII digits count:

        "2nd desktop" -> 0, "-50" -> 0, "0" -> 0, "124" -> 124, "1.24" -> 0

    Returns:
        The index, or 0 if the string is not an index
    """
    if not _INDEX_PATTERN.fullmatch(name):
        return 0
    return int(name)


def validate_workspace_name(name: str) -> None:
    """Reject names the registry cannot hold or persist.

    Raises:
        WorkspaceError: Empty name or name containing a line break
    """
    if not name:
        raise WorkspaceError(ErrorCode.INVALID_NAME, "workspace name must not be empty")
    if "\n" in name or "\r" in name:
        raise WorkspaceError(
            ErrorCode.INVALID_NAME,
            "workspace name must not contain line breaks",
            context={"name": name},
        )


class WorkspaceRegistry:
    """Ordered collection of all live workspaces."""

    def __init__(
        self,
        scene: SceneGraph,
        views: ViewManager,
        groups: Sequence[WorkspaceGroup],
        indicator: WorkspaceIndicator,
        store: WorkspaceStateStore,
        events: EventBroadcaster,
    ) -> None:
        """Create the registry with the startup workspace.

        Startup policy: a compositor launch always begins with a single
        workspace named "1", ignoring both persisted and declared state, and
        overwrites the previous session's persisted list. Persisted state is
        only consulted by reconfigure().

        Args:
            scene: Factory for per-workspace layer groups
            views: Compositor view manager
            groups: Workspace-group protocol objects (cosmic, ext)
            indicator: Transient workspace indicator
            store: Persistence for the name list
            events: Broadcaster for IPC event subscribers
        """
        self.scene = scene
        self.views = views
        self.groups = list(groups)
        self.indicator = indicator
        self.store = store
        self.events = events

        self.workspaces: List[Workspace] = []
        self.last: Optional[Workspace] = None
        self._ids = itertools.count(1)

        for group in self.groups:
            group.set_activate_handler(self.handle_activate_request)

        initial = self._add_workspace(INITIAL_WORKSPACE_NAME)
        self.current: Workspace = initial
        initial.tree.set_enabled(True)
        for handle in initial.handles:
            handle.set_active(True)

        self._persist()

    # Lookup

    def __len__(self) -> int:
        return len(self.workspaces)

    def __iter__(self) -> Iterator[Workspace]:
        return iter(self.workspaces)

    def names(self) -> List[str]:
        return [workspace.name for workspace in self.workspaces]

    def index_of(self, workspace: Optional[Workspace]) -> int:
        """1-based position of a workspace, or 0 for None / not a member."""
        if workspace is None:
            return 0
        for idx, candidate in enumerate(self.workspaces, start=1):
            if candidate is workspace:
                return idx
        return 0

    def current_index(self) -> int:
        return self.index_of(self.current)

    def by_index(self, index: int) -> Optional[Workspace]:
        """Workspace at a 1-based position, or None if out of range."""
        if index < 1 or index > len(self.workspaces):
            return None
        return self.workspaces[index - 1]

    def by_id(self, workspace_id: int) -> Optional[Workspace]:
        for workspace in self.workspaces:
            if workspace.id == workspace_id:
                return workspace
        return None

    def has_views(self, workspace: Workspace) -> bool:
        """True if at least one non-omnipresent view is assigned to the workspace."""
        return any(
            not view.visible_on_all_workspaces
            for view in self.views.views_on(workspace)
        )

    # Adjacency

    def find(self, anchor: Workspace, name: Optional[str], wrap: bool = False) -> Optional[Workspace]:
        """Resolve a workspace target relative to an anchor.

        Symbolic targets (case-insensitive): current, last, left, right,
        left-occupied, right-occupied. Anything else resolves by 1-based
        index if it is a plain number, then by exact name.

        Args:
            anchor: Workspace the relative targets are computed from
            name: Target expression
            wrap: Whether left/right searches roll over the list ends

        Returns:
            The resolved workspace, or None
        """
        if name is None:
            return None

        target = name.lower()
        if target == "current":
            return anchor
        if target == "last":
            return self.last
        if target == "left":
            return self._step(anchor, -1, wrap)
        if target == "right":
            return self._step(anchor, 1, wrap)
        if target == "left-occupied":
            return self._adjacent_occupied(anchor, -1, wrap)
        if target == "right-occupied":
            return self._adjacent_occupied(anchor, 1, wrap)
        return self._find_by_name(name)

    def _find_by_name(self, name: str) -> Optional[Workspace]:
        parsed_index = parse_workspace_index(name)
        if parsed_index:
            workspace = self.by_index(parsed_index)
            if workspace is not None:
                return workspace

        for workspace in self.workspaces:
            if workspace.name == name:
                return workspace

        logger.error(f"Workspace '{name}' not found")
        return None

    def _position(self, workspace: Workspace) -> int:
        position = self.index_of(workspace) - 1
        if position < 0:
            raise WorkspaceError(
                ErrorCode.WORKSPACE_NOT_FOUND,
                "workspace is not registered",
                context={"workspace": repr(workspace)},
            )
        return position

    def _step(self, anchor: Workspace, step: int, wrap: bool) -> Optional[Workspace]:
        position = self._position(anchor) + step
        if 0 <= position < len(self.workspaces):
            return self.workspaces[position]
        if not wrap:
            return None
        # Roll over
        return self.workspaces[position % len(self.workspaces)]

    def _adjacent_occupied(self, anchor: Workspace, step: int, wrap: bool) -> Optional[Workspace]:
        start = self._position(anchor)
        count = len(self.workspaces)
        position = start + step
        has_wrapped = False

        while True:
            if position < 0 or position >= count:
                # At most one roll-over, so the search always ends
                if not wrap or has_wrapped:
                    return None
                position = count - 1 if step < 0 else 0
                has_wrapped = True
                continue

            if position == start:
                return None

            candidate = self.workspaces[position]
            if self.has_views(candidate):
                return candidate

            position += step

    # Switching

    def switch_to(self, target: Workspace, update_focus: bool = True) -> None:
        """Make target the current workspace.

        update_focus should normally be True. It is False only when the
        switch was initiated by a focus change, to avoid refocusing
        recursively.
        """
        if target is self.current:
            return
        if self.index_of(target) == 0:
            raise WorkspaceError(
                ErrorCode.WORKSPACE_NOT_FOUND,
                "workspace is not registered",
                context={"workspace": repr(target)},
            )

        previous = self.current

        # Disable the old workspace
        previous.tree.set_enabled(False)
        for handle in previous.handles:
            handle.set_active(False)

        # Omnipresent views follow the switch
        for view in reversed(self.views.views()):
            if view.visible_on_all_workspaces:
                self.views.move_to_workspace(view, target)

        target.tree.set_enabled(True)

        self.last = previous
        # New views spawn on the current workspace
        self.current = target

        grabbed_view = self.views.grabbed_view
        if grabbed_view is not None:
            self.views.move_to_workspace(grabbed_view, target)

        # Focus what the user sees, unless focus is on an omnipresent view
        if update_focus:
            active_view = self.views.active_view
            if not (active_view is not None and active_view.visible_on_all_workspaces):
                self.views.focus_topmost_view()

        self.indicator.show(self.workspaces, target)

        # Don't carry a cursor image over from the previous workspace
        self.views.update_cursor_focus()
        self.views.update_top_layer_visibility()

        for handle in target.handles:
            handle.set_active(True)

        logger.debug(f"Switched workspace {previous.name!r} -> {target.name!r}")
        self.events.workspace_changed(self)

    def handle_activate_request(self, workspace_id: int) -> None:
        """Inbound activate-request from a workspace-group protocol client."""
        workspace = self.by_id(workspace_id)
        if workspace is None:
            logger.warning(f"Activate request for unknown workspace id {workspace_id}")
            return
        logger.info(f"Activating workspace {workspace.name}")
        self.switch_to(workspace, update_focus=True)

    # Mutation

    def add(self, name: str = "") -> Workspace:
        """Append a workspace.

        Args:
            name: Display name; empty synthesizes the next ordinal

        Returns:
            The new workspace
        """
        if not name:
            name = str(len(self.workspaces) + 1)
        validate_workspace_name(name)

        workspace = self._add_workspace(name)
        logger.info(f"Added workspace {name!r} at index {len(self.workspaces)}")
        self._list_changed()
        return workspace

    def rename(self, index: int, name: str) -> bool:
        """Rename the workspace at a 1-based index.

        Returns:
            True if the name changed, False if it already had that name

        Raises:
            WorkspaceError: Invalid name or index
        """
        validate_workspace_name(name)
        workspace = self.by_index(index)
        if workspace is None:
            raise WorkspaceError(
                ErrorCode.INVALID_INDEX,
                "no workspace at index",
                context={"index": index, "count": len(self.workspaces)},
            )

        if workspace.name == name:
            return False

        logger.info(f"Renaming workspace {workspace.name!r} to {name!r}")
        self._set_name(workspace, name)
        self._list_changed()
        return True

    def remove(self, index: int) -> None:
        """Remove the workspace at a 1-based index.

        Its views, and the current/last pointers if they referred to it, move
        to its successor (the first workspace if it was the last one).

        Raises:
            WorkspaceError: Only one workspace left, or invalid index
        """
        if len(self.workspaces) <= 1:
            raise WorkspaceError(ErrorCode.LAST_WORKSPACE, "cannot remove the only workspace")

        workspace = self.by_index(index)
        if workspace is None:
            raise WorkspaceError(
                ErrorCode.INVALID_INDEX,
                "no workspace at index",
                context={"index": index, "count": len(self.workspaces)},
            )

        if index < len(self.workspaces):
            fallback = self.workspaces[index]
        else:
            fallback = self.workspaces[0]

        self._evacuate(workspace, fallback)
        logger.info(f"Removing workspace {workspace.name!r} (fallback {fallback.name!r})")
        self._destroy_workspace(workspace)
        self._list_changed()

    def reconfigure(self, declared: Sequence[str]) -> bool:
        """Reconcile the registry with the desired name list.

        The persisted list wins over the declared configuration when it holds
        at least one name. Names are updated in place, missing workspaces are
        appended and surplus ones destroyed (their views and pointers move to
        the first workspace).

        Returns:
            True if anything changed
        """
        persisted = self.store.load()
        source = persisted if persisted is not None else list(declared)
        if not source:
            logger.warning("Reconfigure with an empty workspace list ignored")
            return False

        changed = False
        for position, name in enumerate(source):
            if position >= len(self.workspaces):
                # Number of configured workspaces increased
                logger.debug(f'Adding workspace "{name}"')
                self._add_workspace(name)
                changed = True
                continue

            workspace = self.workspaces[position]
            if workspace.name != name:
                logger.debug(f'Renaming workspace "{workspace.name}" to "{name}"')
                self._set_name(workspace, name)
                changed = True

        surplus = self.workspaces[len(source):]
        if surplus:
            # Number of configured workspaces decreased
            first = self.workspaces[0]
            for workspace in surplus:
                logger.debug(f'Destroying workspace "{workspace.name}"')
                self._evacuate(workspace, first)
                self._destroy_workspace(workspace)
            changed = True

        if changed:
            logger.info(
                f"Reconfigured {len(self.workspaces)} workspace(s) from "
                f"{'persisted state' if persisted is not None else 'configuration'}"
            )
            self._list_changed()
        return changed

    def close(self) -> None:
        """Destroy every workspace (compositor shutdown)."""
        for group in self.groups:
            group.set_activate_handler(None)
        for workspace in list(self.workspaces):
            self._destroy_workspace(workspace)
        self.indicator.close()

    # Internals

    def _add_workspace(self, name: str) -> Workspace:
        workspace = Workspace(id=next(self._ids), name=name)
        workspace.tree = self.scene.create_workspace_tree()
        workspace.tree.set_enabled(False)
        for group in self.groups:
            workspace.handles.append(group.create_workspace(workspace.id, name))
        self.workspaces.append(workspace)
        return workspace

    def _set_name(self, workspace: Workspace, name: str) -> None:
        workspace.name = name
        for handle in workspace.handles:
            handle.set_name(name)

    def _evacuate(self, workspace: Workspace, fallback: Workspace) -> None:
        """Move everything that refers to workspace over to fallback."""
        for view in list(self.views.views()):
            if view.workspace is workspace:
                self.views.move_to_workspace(view, fallback)

        if self.current is workspace:
            self.switch_to(fallback, update_focus=True)
        if self.last is workspace:
            self.last = fallback

    def _destroy_workspace(self, workspace: Workspace) -> None:
        if workspace.tree is not None:
            workspace.tree.destroy()
            workspace.tree = None
        for handle in workspace.handles:
            handle.destroy()
        workspace.handles.clear()
        self.workspaces.remove(workspace)

    def _persist(self) -> None:
        self.store.save(self.names())

    def _list_changed(self) -> None:
        self._persist()
        self.events.workspace_list_changed(self)
