"""Interfaces to the compositor subsystems the control plane drives.

The control plane never renders, moves windows or handles input itself. It
calls into these collaborators, which the host compositor implements (see
headless.py for the in-memory implementation used by the standalone daemon
and the tests).
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

from .models import View, Workspace

ActivateHandler = Callable[[int], None]


class LayerGroup(ABC):
    """Scene-graph subtree holding one workspace's views."""

    @abstractmethod
    def set_enabled(self, enabled: bool) -> None:
        """Show or hide the subtree."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the subtree."""


class SceneGraph(ABC):
    """Factory for per-workspace layer groups."""

    @abstractmethod
    def create_workspace_tree(self) -> LayerGroup:
        """Create a new, initially enabled, layer group."""


class WorkspaceHandle(ABC):
    """A workspace's object inside an external workspace-group protocol."""

    workspace_id: int

    @abstractmethod
    def set_name(self, name: str) -> None:
        pass

    @abstractmethod
    def set_active(self, active: bool) -> None:
        pass

    @abstractmethod
    def destroy(self) -> None:
        pass


class WorkspaceGroup(ABC):
    """External workspace-group protocol object (e.g. cosmic, ext).

    Clients of the protocol may ask for a workspace to be activated; the
    group delivers those requests as ``activate-request(workspace_id)`` to
    the handler installed with set_activate_handler().
    """

    name: str = "workspace-group"

    @abstractmethod
    def create_workspace(self, workspace_id: int, name: str) -> WorkspaceHandle:
        """Create a handle for a new workspace."""

    @abstractmethod
    def set_activate_handler(self, handler: Optional[ActivateHandler]) -> None:
        """Install the receiver of inbound activate requests."""


class ViewManager(ABC):
    """The compositor's window registry and focus bookkeeping."""

    @abstractmethod
    def views(self) -> List[View]:
        """All views in stacking order, topmost first."""

    @abstractmethod
    def move_to_workspace(self, view: View, workspace: Workspace) -> None:
        """Reassign a view (and reparent its scene node)."""

    @property
    @abstractmethod
    def active_view(self) -> Optional[View]:
        """The focused view, if any."""

    @property
    @abstractmethod
    def grabbed_view(self) -> Optional[View]:
        """The view being interactively moved or resized, if any."""

    @abstractmethod
    def focus_topmost_view(self) -> None:
        """Focus the topmost focusable view on the current workspace."""

    @abstractmethod
    def update_cursor_focus(self) -> None:
        """Recompute what is under the cursor (image, pointer focus)."""

    @abstractmethod
    def update_top_layer_visibility(self) -> None:
        """Let only visible fullscreen views hide the top layer."""

    def views_on(self, workspace: Workspace) -> Iterable[View]:
        return (view for view in self.views() if view.workspace is workspace)


class Keyboard(ABC):
    """Seat keyboard state."""

    @abstractmethod
    def modifiers_pressed(self) -> bool:
        """True while any modifier key is held."""


class IndicatorRenderer(ABC):
    """Draws the transient workspace indicator on every usable output."""

    @abstractmethod
    def draw(self, workspaces: List[Workspace], current: Workspace) -> None:
        """Render and show the indicator."""

    @abstractmethod
    def hide(self) -> None:
        """Hide the indicator and drop its buffers."""


class ActionExecutor(ABC):
    """The compositor's generic action facility (keybind/menu actions)."""

    @abstractmethod
    def validate(self, name: str, args: Dict[str, str]) -> None:
        """Check that an action exists and has its required arguments.

        Raises:
            ActionNotFoundError: Unknown action name
            MissingArgumentError: A required argument is absent
        """

    @abstractmethod
    def run(self, name: str, args: Dict[str, str]) -> None:
        """Execute a validated action synchronously."""
