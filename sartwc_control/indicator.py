"""Transient on-screen workspace indicator.

Shown after every workspace switch. It is hidden either by a timer or, when
the switch happened while a modifier was held (keybind cycling), by the
release of all modifiers.
"""

import asyncio
import logging
from typing import List, Optional

from .compositor import IndicatorRenderer, Keyboard, ViewManager
from .models import Workspace

logger = logging.getLogger(__name__)


class WorkspaceIndicator:
    """Owns the indicator's visibility state and auto-hide timer."""

    def __init__(
        self,
        renderer: IndicatorRenderer,
        keyboard: Keyboard,
        views: ViewManager,
        popup_time_ms: int = 1000,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """Initialize the indicator.

        Args:
            renderer: Draws/hides the indicator
            keyboard: Modifier state source
            views: View manager, for cursor refocus after hiding
            popup_time_ms: Auto-hide delay; 0 disables the indicator
            loop: Event loop for the auto-hide timer (default: running loop)
        """
        self.renderer = renderer
        self.keyboard = keyboard
        self.views = views
        self.popup_time_ms = popup_time_ms
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self.visible = False
        self.shown_by_modifier = False

    def show(self, workspaces: List[Workspace], current: Workspace) -> None:
        """Draw the indicator for the given registry state."""
        if not self.popup_time_ms:
            return

        self.renderer.draw(workspaces, current)
        self.visible = True

        if self.keyboard.modifiers_pressed():
            # Hidden by release of all modifiers
            self._cancel_timer()
            self.shown_by_modifier = True
        else:
            self._arm_timer()

    def hide(self) -> None:
        """Hide the indicator and refresh cursor focus."""
        self._cancel_timer()
        self.renderer.hide()
        self.visible = False
        self.shown_by_modifier = False

        # The cursor may have been over the indicator
        self.views.update_cursor_focus()

    def on_modifiers_released(self) -> None:
        """Called by the host when the last modifier key is released."""
        if self.shown_by_modifier:
            self.hide()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        try:
            loop = self._loop or asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, indicator auto-hide not scheduled")
            return
        self._timer = loop.call_later(self.popup_time_ms / 1000, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        self.hide()

    def close(self) -> None:
        """Drop the pending timer, if any."""
        self._cancel_timer()
