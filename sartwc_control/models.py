"""Data models for the sartwc control plane.

Runtime state is held in plain dataclasses (mutated in place on the event
loop thread); the declared configuration lives in config.py as a pydantic
model.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .compositor import LayerGroup, WorkspaceHandle


@dataclass
class Geometry:
    """Rectangle in layout coordinates."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0


@dataclass(eq=False)
class Workspace:
    """A named, ordered container of views.

    Position is not stored: it is implied by the order of the registry.
    Compared by identity, since names are not unique.
    """

    id: int  # Stable identity, used by activate requests
    name: str
    tree: Optional["LayerGroup"] = None  # Scene-graph layer group, enabled while current
    handles: List["WorkspaceHandle"] = field(default_factory=list)  # One per workspace-group protocol

    def __repr__(self) -> str:
        return f"Workspace(id={self.id}, name={self.name!r})"


@dataclass(eq=False)
class View:
    """A toplevel window as the control plane sees it.

    The compositor owns views; the control plane reads their state and asks
    the view manager to move them between workspaces.
    """

    id: int
    app_id: str = ""
    title: str = ""
    workspace: Optional[Workspace] = None
    mapped: bool = True

    current: Geometry = field(default_factory=Geometry)
    output: str = ""  # Output name, empty when not on any output
    usable_area: Optional[Geometry] = None  # Output usable area; None when not on any output

    maximized: bool = False
    minimized: bool = False
    fullscreen: bool = False
    tiled: bool = False

    visible_on_all_workspaces: bool = False  # Omnipresent
    focusable: bool = True

    def __repr__(self) -> str:
        return f"View(id={self.id}, app_id={self.app_id!r})"
