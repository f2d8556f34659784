"""Headless in-memory compositor.

Implements every collaborator interface from compositor.py without any
display server, so the control plane can run as a standalone daemon and be
exercised end to end. State changes are recorded on the objects for
inspection.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from .compositor import (
    ActionExecutor,
    ActivateHandler,
    IndicatorRenderer,
    Keyboard,
    LayerGroup,
    SceneGraph,
    ViewManager,
    WorkspaceGroup,
    WorkspaceHandle,
)
from .errors import ActionNotFoundError, ControlError, ErrorCode, MissingArgumentError
from .models import View, Workspace

if TYPE_CHECKING:
    from .events import EventBroadcaster
    from .workspaces import WorkspaceRegistry

logger = logging.getLogger(__name__)


class HeadlessLayerGroup(LayerGroup):
    def __init__(self) -> None:
        self.enabled = True
        self.destroyed = False

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def destroy(self) -> None:
        self.destroyed = True


class HeadlessSceneGraph(SceneGraph):
    def __init__(self) -> None:
        self.trees: List[HeadlessLayerGroup] = []

    def create_workspace_tree(self) -> HeadlessLayerGroup:
        tree = HeadlessLayerGroup()
        self.trees.append(tree)
        return tree

    def enabled_trees(self) -> List[HeadlessLayerGroup]:
        return [tree for tree in self.trees if tree.enabled and not tree.destroyed]


class HeadlessWorkspaceHandle(WorkspaceHandle):
    def __init__(self, workspace_id: int, name: str) -> None:
        self.workspace_id = workspace_id
        self.name = name
        self.active = False
        self.destroyed = False

    def set_name(self, name: str) -> None:
        self.name = name

    def set_active(self, active: bool) -> None:
        self.active = active

    def destroy(self) -> None:
        self.destroyed = True


class HeadlessWorkspaceGroup(WorkspaceGroup):
    """Workspace-group protocol object without any protocol clients."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.handles: List[HeadlessWorkspaceHandle] = []
        self._handler: Optional[ActivateHandler] = None

    def create_workspace(self, workspace_id: int, name: str) -> HeadlessWorkspaceHandle:
        handle = HeadlessWorkspaceHandle(workspace_id, name)
        self.handles.append(handle)
        return handle

    def set_activate_handler(self, handler: Optional[ActivateHandler]) -> None:
        self._handler = handler

    def live_handles(self) -> List[HeadlessWorkspaceHandle]:
        return [handle for handle in self.handles if not handle.destroyed]

    def activate(self, workspace_id: int) -> None:
        """Simulate a protocol client asking for a workspace to be activated."""
        if self._handler is None:
            logger.warning(f"{self.name}: activate request without a handler")
            return
        self._handler(workspace_id)


class HeadlessViewManager(ViewManager):
    """View list in stacking order, topmost first."""

    def __init__(self) -> None:
        self._views: List[View] = []
        self._active: Optional[View] = None
        self._grabbed: Optional[View] = None
        self._next_id = 1
        self.registry: Optional["WorkspaceRegistry"] = None
        self.events: Optional["EventBroadcaster"] = None
        self.cursor_updates = 0
        self.top_layer_updates = 0

    def attach(self, registry: "WorkspaceRegistry", events: "EventBroadcaster") -> None:
        self.registry = registry
        self.events = events

    def views(self) -> List[View]:
        return list(self._views)

    def move_to_workspace(self, view: View, workspace: Workspace) -> None:
        view.workspace = workspace

    @property
    def active_view(self) -> Optional[View]:
        return self._active

    @property
    def grabbed_view(self) -> Optional[View]:
        return self._grabbed

    def grab(self, view: Optional[View]) -> None:
        """Start (view) or end (None) an interactive move/resize."""
        self._grabbed = view

    def focus_topmost_view(self) -> None:
        current = self.registry.current if self.registry else None
        for view in self._views:
            if view.workspace is current and view.mapped and view.focusable and not view.minimized:
                self.focus(view)
                return
        self.focus(None)

    def update_cursor_focus(self) -> None:
        self.cursor_updates += 1

    def update_top_layer_visibility(self) -> None:
        self.top_layer_updates += 1

    def create_view(self, app_id: str = "", title: str = "", **attrs) -> View:
        """Create a mapped view on the current workspace and raise it."""
        view = View(id=self._next_id, app_id=app_id, title=title, **attrs)
        self._next_id += 1
        if view.workspace is None and self.registry is not None:
            view.workspace = self.registry.current
        self._views.insert(0, view)
        if self.events is not None and self.registry is not None:
            self.events.view_mapped(self.registry, view)
        return view

    def unmap_view(self, view: View) -> None:
        view.mapped = False
        if self._grabbed is view:
            self._grabbed = None
        if self.events is not None and self.registry is not None:
            self.events.view_unmapped(self.registry, view)
        if self._active is view:
            self.focus_topmost_view()
        self._views.remove(view)

    def focus(self, view: Optional[View]) -> None:
        if view is self._active:
            return
        self._active = view
        if view is not None:
            self._views.remove(view)
            self._views.insert(0, view)
        if self.events is not None and self.registry is not None:
            self.events.focus_changed(self.registry, view)


class HeadlessKeyboard(Keyboard):
    def __init__(self) -> None:
        self.pressed = False

    def modifiers_pressed(self) -> bool:
        return self.pressed


class HeadlessRenderer(IndicatorRenderer):
    """Records indicator draws instead of rendering them."""

    def __init__(self) -> None:
        self.draws: List[Tuple[List[str], str]] = []
        self.visible = False

    def draw(self, workspaces: List[Workspace], current: Workspace) -> None:
        self.draws.append(([workspace.name for workspace in workspaces], current.name))
        self.visible = True

    def hide(self) -> None:
        self.visible = False


ActionHandler = Callable[[Dict[str, str]], None]


@dataclass
class ActionDefinition:
    name: str
    handler: ActionHandler
    required: Tuple[str, ...] = field(default_factory=tuple)


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in ("yes", "true", "1", "on")


class HeadlessActionExecutor(ActionExecutor):
    """Named actions with required arguments; names match case-insensitively."""

    def __init__(self) -> None:
        self._actions: Dict[str, ActionDefinition] = {}
        self.history: List[Tuple[str, Dict[str, str]]] = []

    def register(self, name: str, handler: ActionHandler, required: Sequence[str] = ()) -> None:
        self._actions[name.lower()] = ActionDefinition(name, handler, tuple(required))

    def names(self) -> List[str]:
        return [definition.name for definition in self._actions.values()]

    def _lookup(self, name: str) -> ActionDefinition:
        definition = self._actions.get(name.lower())
        if definition is None:
            raise ActionNotFoundError(name)
        return definition

    def validate(self, name: str, args: Dict[str, str]) -> None:
        definition = self._lookup(name)
        for argument in definition.required:
            if not args.get(argument):
                raise MissingArgumentError(definition.name, argument)

    def run(self, name: str, args: Dict[str, str]) -> None:
        definition = self._lookup(name)
        logger.debug(f"Running action {definition.name} {args}")
        self.history.append((definition.name, dict(args)))
        definition.handler(args)

    def install_workspace_actions(
        self,
        registry: "WorkspaceRegistry",
        views: ViewManager,
        reconfigure: Callable[[], None],
    ) -> None:
        """Register the built-in actions that drive the workspace registry."""

        def go_to_desktop(args: Dict[str, str]) -> None:
            target = registry.find(registry.current, args["to"], _parse_bool(args.get("wrap"), True))
            if target is None:
                raise ControlError(ErrorCode.ACTION_FAILED, "no such workspace", {"to": args["to"]})
            registry.switch_to(target)

        def send_to_desktop(args: Dict[str, str]) -> None:
            view = views.active_view
            if view is None:
                return
            target = registry.find(registry.current, args["to"], _parse_bool(args.get("wrap"), True))
            if target is None:
                raise ControlError(ErrorCode.ACTION_FAILED, "no such workspace", {"to": args["to"]})
            views.move_to_workspace(view, target)
            if _parse_bool(args.get("follow"), True):
                registry.switch_to(target, update_focus=False)
            else:
                views.focus_topmost_view()

        self.register("GoToDesktop", go_to_desktop, required=("to",))
        self.register("SendToDesktop", send_to_desktop, required=("to",))
        self.register("Reconfigure", lambda args: reconfigure())


class HeadlessCompositor:
    """Bundle of headless collaborators with the two workspace groups."""

    def __init__(self) -> None:
        self.scene = HeadlessSceneGraph()
        self.views = HeadlessViewManager()
        self.cosmic = HeadlessWorkspaceGroup("cosmic")
        self.ext = HeadlessWorkspaceGroup("ext")
        self.keyboard = HeadlessKeyboard()
        self.renderer = HeadlessRenderer()
        self.actions = HeadlessActionExecutor()

    @property
    def groups(self) -> List[HeadlessWorkspaceGroup]:
        return [self.cosmic, self.ext]
